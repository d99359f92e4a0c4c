"""
Sheet placement: where finished cards go on printable pages.

All compiled geometry is in points with the origin at the top-left corner
of the page and y growing downward.
"""

# Standard Library
import dataclasses
import logging
import re
import typing
import xml.etree.ElementTree as StdElementTree

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.config
import card_sheet_renderer.errors
import card_sheet_renderer.layout


ConfigurationError = csr.errors.ConfigurationError
ParseError = csr.errors.ParseError

UNIT_POINTS = csr.config.UNIT_POINTS
POINTS_PER_INCH = csr.config.POINTS_PER_INCH
POINTS_PER_MILLIMETER = csr.config.POINTS_PER_MILLIMETER

logger = logging.getLogger(__name__)

ALIGNMENTS = ("left", "center", "right")
CROP_LINE_LENGTHS = ("margin", "full")
AXES = ("horizontal", "vertical")
PAGE_SIZE_ALIASES = {
	"us letter": "letter",
	"us legal": "legal",
	"us tabloid": "tabloid",
	"us ledger": "ledger",
}


@dataclasses.dataclass(frozen=True)
class CropLine:
	orientation: str
	offset: float
	length: float


@dataclasses.dataclass(frozen=True)
class CardPlacement:
	x: float
	y: float
	rotate: float | None = None
	reflect: str | None = None


@dataclasses.dataclass(frozen=True)
class Sheet:
	page_width: float
	page_height: float
	card_width: float
	card_height: float
	crop_lines: tuple[CropLine, ...] = ()
	cards: tuple[CardPlacement, ...] = ()

	@property
	def num_cards(self) -> int:
		return len(self.cards)


#============================================
def unit_scale(units: str) -> float:
	"""
	Look up the size of one unit in points.

	Args:
		units: "in", "pt" or "mm".

	Returns:
		Points per unit.
	"""
	key = units.strip().lower()
	if key not in UNIT_POINTS:
		raise ConfigurationError(f"invalid unit {units!r}, expected one of {', '.join(UNIT_POINTS)}")
	return UNIT_POINTS[key]


#============================================
def canonical_size_name(name: str) -> str:
	"""
	Normalize a paper or card size name.

	Args:
		name: Size name such as "US-Letter".

	Returns:
		Lowercase name with runs of other characters turned into one space.
	"""
	return re.sub(r"[^a-z0-9]+", " ", name.lower()).strip()


#============================================
def orient(size: tuple[float, float], orientation: str | None) -> tuple[float, float]:
	"""
	Apply a named orientation to a (width, height) pair.

	Args:
		size: Width and height.
		orientation: "portrait"/"tall", "landscape"/"wide" or None.

	Returns:
		Width and height after orientation.
	"""
	if orientation is None:
		return size
	key = orientation.strip().lower()
	width, height = size
	if key in ("portrait", "tall"):
		return (min(width, height), max(width, height))
	if key in ("landscape", "wide"):
		return (max(width, height), min(width, height))
	raise ConfigurationError(f"invalid orientation {orientation!r}")


#============================================
def named_page_size(name: str, orientation: str | None = None) -> tuple[float, float]:
	"""
	Look up a named page size in points.

	Args:
		name: Page size name, e.g. "letter", "US Letter" or "A4".
		orientation: Optional orientation.

	Returns:
		Width and height in points.
	"""
	key = canonical_size_name(name)
	key = PAGE_SIZE_ALIASES.get(key, key)
	if key in csr.config.PAGE_SIZES_INCHES:
		width, height = csr.config.PAGE_SIZES_INCHES[key]
		size = (width * POINTS_PER_INCH, height * POINTS_PER_INCH)
	elif key in csr.config.PAGE_SIZES_MM:
		width, height = csr.config.PAGE_SIZES_MM[key]
		size = (width * POINTS_PER_MILLIMETER, height * POINTS_PER_MILLIMETER)
	else:
		raise ConfigurationError(f"unknown page size {name!r}")
	return orient(size, orientation)


#============================================
def named_card_size(name: str, orientation: str | None = None) -> tuple[float, float]:
	"""
	Look up a named card size in points.

	Args:
		name: Card size name, e.g. "poker" or "small square".
		orientation: Optional orientation.

	Returns:
		Width and height in points.
	"""
	key = canonical_size_name(name)
	if key not in csr.config.CARD_SIZES_MM:
		raise ConfigurationError(f"unknown card size {name!r}")
	width, height = csr.config.CARD_SIZES_MM[key]
	return orient((width * POINTS_PER_MILLIMETER, height * POINTS_PER_MILLIMETER), orientation)


@dataclasses.dataclass(frozen=True)
class Margins:
	top: float = 0.0
	right: float = 0.0
	bottom: float = 0.0
	left: float = 0.0

	@classmethod
	def from_values(cls, values: list[float]) -> "Margins":
		try:
			return cls(*csr.layout.expand_shorthand(values, "margins"))
		except ParseError as error:
			raise ConfigurationError(str(error)) from error

	def scaled(self, factor: float) -> "Margins":
		return Margins(self.top * factor, self.right * factor, self.bottom * factor, self.left * factor)


@dataclasses.dataclass(frozen=True)
class Gutter:
	vertical: float = 0.0
	horizontal: float = 0.0

	@classmethod
	def from_values(cls, values: list[float]) -> "Gutter":
		if len(values) == 1:
			return cls(values[0], values[0])
		if len(values) == 2:
			return cls(values[0], values[1])
		raise ConfigurationError(f"gutter takes 1 or 2 values, got {len(values)}")

	def scaled(self, factor: float) -> "Gutter":
		return Gutter(self.vertical * factor, self.horizontal * factor)


#============================================
def fit_count(available: float, item: float, gap: float) -> int:
	"""
	Count how many items of a size fit with gaps between them.

	Args:
		available: Available length.
		item: Item length.
		gap: Gap between neighbours.

	Returns:
		Number of items, never negative.
	"""
	if item <= 0:
		return 0
	return max(0, int((available + gap) // (item + gap)))


@dataclasses.dataclass(frozen=True)
class AutomaticPlacement:
	"""Grid placement filling the page inside its margins."""

	margins: Margins = Margins()
	gutter: Gutter = Gutter()
	align: str = "left"
	crop_line_length: str | None = None

	def __post_init__(self) -> None:
		if self.align not in ALIGNMENTS:
			raise ConfigurationError(f"invalid alignment {self.align!r}, expected one of {', '.join(ALIGNMENTS)}")

	def compile(
		self,
		page_width: float,
		page_height: float,
		card_width: float,
		card_height: float,
		scale: float = 1.0,
	) -> tuple[list[CardPlacement], list[CropLine]]:
		"""
		Lay out the grid.

		Slots are returned column-major: every row of the first column, then
		every row of the next column.

		Args:
			page_width: Page width in points.
			page_height: Page height in points.
			card_width: Card width in points.
			card_height: Card height in points.
			scale: Points per unit for margins and gutter.

		Returns:
			Tuple of (slots, crop lines).
		"""
		margins = self.margins.scaled(scale)
		gutter = self.gutter.scaled(scale)
		content_width = page_width - margins.left - margins.right
		content_height = page_height - margins.top - margins.bottom

		columns = fit_count(content_width, card_width, gutter.horizontal)
		rows = fit_count(content_height, card_height, gutter.vertical)
		if columns == 0 or rows == 0:
			return ([], [])

		leftover = content_width - (columns * card_width + (columns - 1) * gutter.horizontal)
		x_start = margins.left
		if self.align == "center":
			x_start += leftover / 2.0
		elif self.align == "right":
			x_start += leftover
		y_start = margins.top

		column_xs = [x_start + col * (card_width + gutter.horizontal) for col in range(columns)]
		row_ys = [y_start + row * (card_height + gutter.vertical) for row in range(rows)]

		slots: list[CardPlacement] = []
		for x in column_xs:
			for y in row_ys:
				slots.append(CardPlacement(x, y))

		crop_lines: list[CropLine] = []
		if self.crop_line_length is not None:
			if self.crop_line_length == "full":
				vertical_length = page_height
				horizontal_length = page_width
			else:
				vertical_length = min(margins.top, margins.bottom)
				horizontal_length = min(margins.left, margins.right)
			for col, x in enumerate(column_xs):
				crop_lines.append(CropLine("vertical", x, vertical_length))
				if gutter.horizontal > 0 or col == columns - 1:
					crop_lines.append(CropLine("vertical", x + card_width, vertical_length))
			for row, y in enumerate(row_ys):
				crop_lines.append(CropLine("horizontal", y, horizontal_length))
				if gutter.vertical > 0 or row == rows - 1:
					crop_lines.append(CropLine("horizontal", y + card_height, horizontal_length))
			crop_lines = [line for line in crop_lines if line.length > 0]
		return (slots, crop_lines)


@dataclasses.dataclass(frozen=True)
class ManualCropLine:
	orientation: str
	offset: float
	length: float | None = None


@dataclasses.dataclass(frozen=True)
class ManualPlacement:
	"""Explicit card slots and crop lines, in sheet units."""

	cards: tuple[CardPlacement, ...] = ()
	crop_lines: tuple[ManualCropLine, ...] = ()
	crop_line_length: float | None = None

	def compile(self, scale: float = 1.0) -> tuple[list[CardPlacement], list[CropLine]]:
		"""
		Convert slots and crop lines to points.

		Crop lines without a length use the shared length; lines whose length
		is missing or not positive are dropped.

		Args:
			scale: Points per unit.

		Returns:
			Tuple of (slots, crop lines).
		"""
		slots = [
			CardPlacement(card.x * scale, card.y * scale, card.rotate, card.reflect)
			for card in self.cards
		]
		crop_lines: list[CropLine] = []
		for line in self.crop_lines:
			length = line.length if line.length is not None else self.crop_line_length
			if length is None or length <= 0:
				continue
			crop_lines.append(CropLine(line.orientation, line.offset * scale, length * scale))
		return (slots, crop_lines)


@dataclasses.dataclass(frozen=True)
class SheetType:
	name: str
	units: str
	page_size: tuple[float, float]
	card_size: tuple[float, float]
	automatic: AutomaticPlacement | None = None
	manual: ManualPlacement | None = None

	def compile(self) -> Sheet:
		"""
		Resolve the placement method into a Sheet.

		Returns:
			Sheet with points geometry.
		"""
		scale = unit_scale(self.units)
		page_width, page_height = self.page_size
		card_width, card_height = self.card_size
		if self.manual is not None:
			if self.automatic is not None:
				logger.warning("sheet type %r defines manual and automatic placement; using manual", self.name)
			slots, crop_lines = self.manual.compile(scale)
		elif self.automatic is not None:
			slots, crop_lines = self.automatic.compile(page_width, page_height, card_width, card_height, scale)
		else:
			raise ConfigurationError(f"sheet type {self.name!r} has no placement method")
		return Sheet(
			page_width=page_width,
			page_height=page_height,
			card_width=card_width,
			card_height=card_height,
			crop_lines=tuple(crop_lines),
			cards=tuple(slots),
		)


#============================================
def optional_number(element: StdElementTree.Element, name: str) -> float | None:
	value = element.get(name)
	if value is None:
		return None
	numbers = csr.layout.split_numbers(value, f"<{element.tag}> {name}")
	if len(numbers) != 1:
		raise ParseError(f"<{element.tag}> {name} takes one number")
	return numbers[0]


#============================================
def parse_size_element(element: StdElementTree.Element, scale: float, named_size: typing.Callable[..., tuple[float, float]]) -> tuple[float, float]:
	"""
	Parse a <page-size> or <card-size> element into points.

	Args:
		element: XML element with either name= or width= and height=.
		scale: Points per sheet unit for explicit sizes.
		named_size: Lookup function for named sizes.

	Returns:
		Width and height in points.
	"""
	orientation = element.get("orientation")
	if element.get("name") is not None:
		return named_size(element.get("name"), orientation)
	width = optional_number(element, "width")
	height = optional_number(element, "height")
	if width is None or height is None:
		raise ConfigurationError(f"<{element.tag}> needs name= or width= and height=")
	return orient((width * scale, height * scale), orientation)


#============================================
def parse_automatic(element: StdElementTree.Element) -> AutomaticPlacement:
	margins = Margins()
	gutter = Gutter()
	crop_line_length: str | None = None
	for child in element:
		if child.tag == "margins":
			margins = Margins.from_values(csr.layout.split_numbers(child.text or "", "margins"))
		elif child.tag == "gutter":
			gutter = Gutter.from_values(csr.layout.split_numbers(child.text or "", "gutter"))
		elif child.tag == "crop-lines":
			crop_line_length = child.get("length", "margin").strip().lower()
			if crop_line_length not in CROP_LINE_LENGTHS:
				logger.warning("unknown crop line length %r, using margin", crop_line_length)
				crop_line_length = "margin"
		else:
			raise ParseError(f"unexpected <{child.tag}> inside <automatic>")
	align = element.get("align", "left").strip().lower()
	return AutomaticPlacement(margins, gutter, align, crop_line_length)


#============================================
def parse_manual(element: StdElementTree.Element) -> ManualPlacement:
	cards: list[CardPlacement] = []
	crop_lines: list[ManualCropLine] = []
	crop_line_length: float | None = None
	for child in element:
		if child.tag == "card":
			reflect = child.get("flip", child.get("reflect"))
			if reflect is not None:
				reflect = reflect.strip().lower()
				if reflect not in AXES:
					raise ConfigurationError(f"invalid flip axis {reflect!r}, expected horizontal or vertical")
			cards.append(CardPlacement(
				x=csr.layout.get_number(child, ("x",)),
				y=csr.layout.get_number(child, ("y",)),
				rotate=optional_number(child, "rotate"),
				reflect=reflect,
			))
		elif child.tag == "crop-lines":
			crop_line_length = optional_number(child, "length")
			for line in child:
				if line.tag == "horizontal":
					offset = csr.layout.get_number(line, ("y",))
				elif line.tag == "vertical":
					offset = csr.layout.get_number(line, ("x",))
				else:
					raise ParseError(f"unexpected <{line.tag}> inside <crop-lines>")
				crop_lines.append(ManualCropLine(line.tag, offset, optional_number(line, "length")))
		else:
			raise ParseError(f"unexpected <{child.tag}> inside <manual>")
	return ManualPlacement(tuple(cards), tuple(crop_lines), crop_line_length)


#============================================
def parse_sheet_type(element: StdElementTree.Element) -> SheetType:
	"""
	Parse a <sheet-type> element.

	Args:
		element: XML element.

	Returns:
		SheetType instance.
	"""
	name = csr.layout.require_attribute(element, "name")
	units = element.get("units", "in")
	scale = unit_scale(units)
	page_size: tuple[float, float] | None = None
	card_size: tuple[float, float] | None = None
	automatic: AutomaticPlacement | None = None
	manual: ManualPlacement | None = None
	for child in element:
		if child.tag == "page-size":
			page_size = parse_size_element(child, scale, named_page_size)
		elif child.tag == "card-size":
			card_size = parse_size_element(child, scale, named_card_size)
		elif child.tag == "automatic":
			automatic = parse_automatic(child)
		elif child.tag == "manual":
			manual = parse_manual(child)
		else:
			raise ParseError(f"unexpected <{child.tag}> inside <sheet-type>")
	if page_size is None:
		raise ConfigurationError(f"sheet type {name!r} has no page size")
	if card_size is None:
		raise ConfigurationError(f"sheet type {name!r} has no card size")
	return SheetType(name, units, page_size, card_size, automatic, manual)
