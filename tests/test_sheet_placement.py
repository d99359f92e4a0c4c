import logging

import defusedxml.ElementTree
import pytest

import card_sheet_renderer.config as config
import card_sheet_renderer.errors as errors
import card_sheet_renderer.sheets as sheets


EPSILON = 1e-6


#============================================
def slot_boxes(slots: list[sheets.CardPlacement], width: float, height: float) -> list[tuple[float, float, float, float]]:
	"""
	Convert slots into (x0, y0, x1, y1) boxes.
	"""
	return [(slot.x, slot.y, slot.x + width, slot.y + height) for slot in slots]


#============================================
def boxes_overlap(box_a: tuple[float, float, float, float], box_b: tuple[float, float, float, float]) -> bool:
	left = max(box_a[0], box_b[0])
	right = min(box_a[2], box_b[2])
	top = max(box_a[1], box_b[1])
	bottom = min(box_a[3], box_b[3])
	return right > left + EPSILON and bottom > top + EPSILON


#============================================
def test_three_by_three_grid() -> None:
	"""
	A 100x100 page with 30x30 cards and no margins holds nine cards.
	"""
	placement = sheets.AutomaticPlacement()
	slots, crop_lines = placement.compile(100.0, 100.0, 30.0, 30.0)
	assert len(slots) == 9
	assert crop_lines == []
	boxes = slot_boxes(slots, 30.0, 30.0)
	for box in boxes:
		assert 0.0 <= box[0] and box[2] <= 100.0
		assert 0.0 <= box[1] and box[3] <= 100.0
	for index, box in enumerate(boxes):
		for other in boxes[index + 1:]:
			assert not boxes_overlap(box, other)


#============================================
def test_slots_are_column_major() -> None:
	slots, _ = sheets.AutomaticPlacement().compile(100.0, 100.0, 30.0, 30.0)
	assert [(slot.x, slot.y) for slot in slots[:4]] == [(0.0, 0.0), (0.0, 30.0), (0.0, 60.0), (30.0, 0.0)]


#============================================
def test_gutter_collapses_grid() -> None:
	"""
	Column and row counts follow floor((content + gutter) / (card + gutter)).
	"""
	for gutter in [0.0, 5.0, 20.0, 35.0, 36.0, 80.0]:
		placement = sheets.AutomaticPlacement(gutter=sheets.Gutter(gutter, gutter))
		slots, _ = placement.compile(100.0, 100.0, 30.0, 30.0)
		expected = int((100.0 + gutter) // (30.0 + gutter))
		assert len(slots) == expected * expected, gutter
	placement = sheets.AutomaticPlacement(gutter=sheets.Gutter(0.0, 40.0))
	slots, _ = placement.compile(100.0, 100.0, 30.0, 30.0)
	assert len(slots) == 2 * 3


#============================================
def test_card_larger_than_page() -> None:
	slots, crop_lines = sheets.AutomaticPlacement(crop_line_length="full").compile(100.0, 100.0, 120.0, 30.0)
	assert slots == []
	assert crop_lines == []


#============================================
def test_center_alignment_splits_leftover() -> None:
	"""
	Center alignment leaves the same space on both sides.
	"""
	for left, right, gutter in [(0.0, 0.0, 0.0), (5.0, 15.0, 2.0), (10.0, 3.0, 7.5)]:
		placement = sheets.AutomaticPlacement(
			margins=sheets.Margins(0.0, right, 0.0, left),
			gutter=sheets.Gutter(0.0, gutter),
			align="center",
		)
		slots, _ = placement.compile(200.0, 100.0, 30.0, 30.0)
		first_x = min(slot.x for slot in slots)
		last_x = max(slot.x for slot in slots) + 30.0
		assert (first_x - left) == pytest.approx((200.0 - right) - last_x)
		assert first_x - left > 0.0


#============================================
def test_right_alignment() -> None:
	placement = sheets.AutomaticPlacement(align="right")
	slots, _ = placement.compile(100.0, 100.0, 30.0, 30.0)
	assert max(slot.x for slot in slots) + 30.0 == pytest.approx(100.0)


#============================================
def test_invalid_alignment() -> None:
	with pytest.raises(errors.ConfigurationError):
		sheets.AutomaticPlacement(align="justify")


#============================================
def test_crop_lines_without_gutter() -> None:
	"""
	Touching cards share a cut, so there are columns + 1 vertical lines.
	"""
	placement = sheets.AutomaticPlacement(margins=sheets.Margins(10.0, 5.0, 20.0, 8.0), crop_line_length="margin")
	slots, crop_lines = placement.compile(113.0, 130.0, 30.0, 30.0)
	vertical = [line for line in crop_lines if line.orientation == "vertical"]
	horizontal = [line for line in crop_lines if line.orientation == "horizontal"]
	assert len(slots) == 3 * 3
	assert [line.offset for line in vertical] == [8.0, 38.0, 68.0, 98.0]
	assert [line.offset for line in horizontal] == [10.0, 40.0, 70.0, 100.0]
	assert all(line.length == 10.0 for line in vertical)
	assert all(line.length == 5.0 for line in horizontal)


#============================================
def test_crop_lines_with_gutter_and_full_length() -> None:
	placement = sheets.AutomaticPlacement(gutter=sheets.Gutter(0.0, 10.0), crop_line_length="full")
	_, crop_lines = placement.compile(100.0, 100.0, 40.0, 50.0)
	vertical = [line for line in crop_lines if line.orientation == "vertical"]
	horizontal = [line for line in crop_lines if line.orientation == "horizontal"]
	assert [line.offset for line in vertical] == [0.0, 40.0, 50.0, 90.0]
	assert [line.offset for line in horizontal] == [0.0, 50.0, 100.0]
	assert all(line.length == 100.0 for line in crop_lines)


#============================================
def test_shorthand_values() -> None:
	assert sheets.Margins.from_values([1.0]) == sheets.Margins(1.0, 1.0, 1.0, 1.0)
	assert sheets.Margins.from_values([1.0, 2.0]) == sheets.Margins(1.0, 2.0, 1.0, 2.0)
	assert sheets.Margins.from_values([1.0, 2.0, 3.0, 4.0]) == sheets.Margins(1.0, 2.0, 3.0, 4.0)
	assert sheets.Gutter.from_values([3.0]) == sheets.Gutter(3.0, 3.0)
	with pytest.raises(errors.ConfigurationError):
		sheets.Margins.from_values([1.0, 2.0, 3.0])
	with pytest.raises(errors.ConfigurationError):
		sheets.Gutter.from_values([1.0, 2.0, 3.0])


#============================================
def test_manual_placement_converts_and_drops_lines() -> None:
	placement = sheets.ManualPlacement(
		cards=(sheets.CardPlacement(1.0, 2.0), sheets.CardPlacement(3.0, 2.0, 90.0, "horizontal")),
		crop_lines=(
			sheets.ManualCropLine("horizontal", 1.0),
			sheets.ManualCropLine("vertical", 2.0, 0.5),
			sheets.ManualCropLine("vertical", 4.0, 0.0),
		),
		crop_line_length=0.25,
	)
	slots, crop_lines = placement.compile(config.POINTS_PER_INCH)
	assert slots[0] == sheets.CardPlacement(72.0, 144.0)
	assert slots[1] == sheets.CardPlacement(216.0, 144.0, 90.0, "horizontal")
	assert crop_lines == [
		sheets.CropLine("horizontal", 72.0, 18.0),
		sheets.CropLine("vertical", 144.0, 36.0),
	]


#============================================
def test_manual_crop_lines_without_length_are_dropped() -> None:
	placement = sheets.ManualPlacement(crop_lines=(sheets.ManualCropLine("horizontal", 1.0),))
	assert placement.compile(1.0) == ([], [])


#============================================
def test_manual_wins_over_automatic(caplog: pytest.LogCaptureFixture) -> None:
	sheet_type = sheets.SheetType(
		name="both",
		units="pt",
		page_size=(100.0, 100.0),
		card_size=(30.0, 30.0),
		automatic=sheets.AutomaticPlacement(),
		manual=sheets.ManualPlacement(cards=(sheets.CardPlacement(5.0, 5.0),)),
	)
	with caplog.at_level(logging.WARNING):
		sheet = sheet_type.compile()
	assert sheet.num_cards == 1
	assert "manual" in caplog.text


#============================================
def test_missing_placement_is_fatal() -> None:
	sheet_type = sheets.SheetType("none", "pt", (100.0, 100.0), (30.0, 30.0))
	with pytest.raises(errors.ConfigurationError):
		sheet_type.compile()


#============================================
def test_units_and_named_sizes() -> None:
	assert sheets.unit_scale("in") == 72.0
	assert sheets.unit_scale("mm") == pytest.approx(2.835, abs=1e-3)
	with pytest.raises(errors.ConfigurationError):
		sheets.unit_scale("furlong")
	assert sheets.named_page_size("US-Letter") == (612.0, 792.0)
	assert sheets.named_page_size("letter", "landscape") == (792.0, 612.0)
	assert sheets.named_page_size("ledger", "tall") == (792.0, 1224.0)
	width, height = sheets.named_page_size("A4")
	assert width == pytest.approx(595.28, abs=0.01)
	assert height == pytest.approx(841.89, abs=0.01)
	width, height = sheets.named_card_size("Small Square")
	assert width == pytest.approx(height)
	with pytest.raises(errors.ConfigurationError):
		sheets.named_page_size("napkin")
	with pytest.raises(errors.ConfigurationError):
		sheets.named_card_size("poker", "sideways")


#============================================
def test_parse_sheet_type_manual() -> None:
	element = defusedxml.ElementTree.fromstring(
		"""
		<sheet-type name="hand" units="mm">
		  <page-size width="100" height="200"/>
		  <card-size name="mini"/>
		  <manual>
		    <card x="10" y="10" rotate="180" flip="vertical"/>
		    <crop-lines length="5">
		      <horizontal y="10"/>
		      <vertical x="10" length="-1"/>
		    </crop-lines>
		  </manual>
		</sheet-type>
		"""
	)
	sheet = sheets.parse_sheet_type(element).compile()
	assert sheet.page_width == pytest.approx(100.0 * config.POINTS_PER_MILLIMETER)
	assert sheet.cards[0].rotate == 180.0
	assert sheet.cards[0].reflect == "vertical"
	assert len(sheet.crop_lines) == 1


#============================================
def test_parse_sheet_type_invalid_axis() -> None:
	element = defusedxml.ElementTree.fromstring(
		'<sheet-type name="x" units="in"><page-size name="letter"/><card-size name="poker"/>'
		'<manual><card x="0" y="0" flip="diagonal"/></manual></sheet-type>'
	)
	with pytest.raises(errors.ConfigurationError):
		sheets.parse_sheet_type(element)
