import io
import pathlib

import PIL.Image
import pypdf
import pytest
import reportlab.pdfbase.pdfmetrics

import card_sheet_renderer.cli as cli
import card_sheet_renderer.colors as colors
import card_sheet_renderer.config as config
import card_sheet_renderer.errors as errors
import card_sheet_renderer.layout as layout
import card_sheet_renderer.painter as painter
import card_sheet_renderer.project as project_lib
import card_sheet_renderer.records as records
import card_sheet_renderer.render as render
import card_sheet_renderer.sheets as sheets


BLACK = colors.BUILTIN_COLORS["black"]

# 100x100 points card with a 10 point bleed: red everywhere, blue square at
# the top-left corner of the trimmed area
CARD_LAYOUT = """<layout>
  <geometry width="100" height="100" cut="10" dpi="72"/>
  <background><solid color="red"/></background>
  <rectangle x="10" y="10" w="20" h="20"><solid color="blue"/></rectangle>
  <text x="10" y="60" w="80" h="30" contents="{{ name }} &lt;b&gt;x&lt;/b&gt;"/>
</layout>
"""

PROJECT_XML = """<project>
  <metadata title="Smoke Deck" author="Tester"/>
  <sheet-type name="pair" units="pt">
    <page-size width="300" height="200"/>
    <card-size width="80" height="80"/>
    <manual>
      <card x="50" y="60"/>
      <card x="150" y="60"/>
      <crop-lines length="5"><horizontal y="60"/></crop-lines>
    </manual>
  </sheet-type>
</project>
"""


#============================================
def build_project() -> project_lib.Project:
	project = project_lib.Project()
	project.add_layout(layout.parse_layout_xml(CARD_LAYOUT, "default"))
	project_lib.parse_project_xml(PROJECT_XML, project)
	project.add_cards([records.Card("goblin", {"name": "Goblin"}), records.Card("orc", {"name": "Orc"})])
	return project


#============================================
def render_pdf_page(path_or_bytes: pathlib.Path | bytes, page_index: int = 0) -> PIL.Image.Image:
	"""
	Rasterize a PDF page at 72 dpi so one pixel is one point.
	"""
	fitz = pytest.importorskip("fitz")
	if isinstance(path_or_bytes, bytes):
		document = fitz.open(stream=path_or_bytes, filetype="pdf")
	else:
		document = fitz.open(str(path_or_bytes))
	pixmap = document.load_page(page_index).get_pixmap(alpha=False)
	image = PIL.Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
	document.close()
	return image


#============================================
def is_red(pixel: tuple[int, int, int]) -> bool:
	return pixel[0] > 200 and pixel[1] < 60 and pixel[2] < 60


#============================================
def is_blue(pixel: tuple[int, int, int]) -> bool:
	return pixel[0] < 60 and pixel[1] < 60 and pixel[2] > 200


#============================================
def is_white(pixel: tuple[int, int, int]) -> bool:
	return min(pixel) > 230


#============================================
def test_render_card_pdf_orientation() -> None:
	"""
	Layout y grows downward: the blue square sits at the top of the page.
	"""
	project = build_project()
	rendered = render.render_card(project, project.card("goblin"), render.ImageStore(project))
	reader = pypdf.PdfReader(io.BytesIO(rendered.pdf_bytes))
	assert len(reader.pages) == 1
	assert float(reader.pages[0].mediabox.width) == pytest.approx(100.0)
	assert reader.metadata.title == "Smoke Deck"
	image = render_pdf_page(rendered.pdf_bytes)
	assert is_blue(image.getpixel((20, 20)))
	assert is_red(image.getpixel((20, 50)))
	assert is_red(image.getpixel((95, 95)))


#============================================
def test_write_png_matches_geometry(tmp_path: pathlib.Path) -> None:
	pytest.importorskip("fitz")
	project = build_project()
	rendered = render.render_card(project, project.card("orc"), render.ImageStore(project))
	output = tmp_path / "png" / "orc.png"
	render.write_png(rendered, output)
	image = PIL.Image.open(output)
	assert image.size == (100, 100)
	assert is_blue(image.convert("RGB").getpixel((20, 20)))
	assert [path.name for path in output.parent.iterdir()] == ["orc.png"]


#============================================
def test_impose_sheet_pages_and_clipping(tmp_path: pathlib.Path) -> None:
	"""
	Cards land on their slots, clipped to the trimmed area, two per page.
	"""
	project = build_project()
	store = render.ImageStore(project)
	goblin = render.render_card(project, project.card("goblin"), store)
	orc = render.render_card(project, project.card("orc"), store)
	sheet = project.sheet_type("pair").compile()
	output = tmp_path / "deck.pdf"
	result = render.impose_sheet([goblin, orc, goblin], sheet, output, project.metadata)
	assert result.pages == 2
	assert result.cards_per_page == 2
	reader = pypdf.PdfReader(str(output))
	assert len(reader.pages) == 2
	assert reader.metadata.title == "Smoke Deck"
	assert reader.metadata.author == "Tester"
	assert reader.metadata.creator == project.metadata.creator

	image = render_pdf_page(output)
	assert is_blue(image.getpixel((60, 70)))
	assert is_red(image.getpixel((100, 100)))
	assert is_white(image.getpixel((45, 100)))
	assert is_white(image.getpixel((100, 145)))
	assert is_white(image.getpixel((140, 100)))
	assert is_blue(image.getpixel((160, 70)))
	assert is_red(image.getpixel((215, 75)))


#============================================
def test_render_cards_keep_going_isolates_expression_errors() -> None:
	project = project_lib.Project()
	project.add_layout(layout.parse_layout_xml(
		'<layout><geometry width="100" height="100"/>'
		'<text x="10" y="10" w="80" h="30" contents="{{ 10 // (cost | int) }}"/></layout>',
		"default",
	))
	project.add_cards([records.Card("zero", {"cost": "0"}), records.Card("two", {"cost": "2"})])
	cards = [project.card("zero"), project.card("two")]
	rendered, failures = render.render_cards(project, cards, render.ImageStore(project), keep_going=True)
	assert [item.card_id for item in rendered] == ["two"]
	assert [failure.card_id for failure in failures] == ["zero"]
	assert isinstance(failures[0].error, errors.TemplateError)


#============================================
def test_impose_sheet_without_cards_writes_nothing(tmp_path: pathlib.Path) -> None:
	project = build_project()
	output = tmp_path / "deck.pdf"
	result = render.impose_sheet([], project.sheet_type("pair").compile(), output, project.metadata)
	assert result.pages == 0
	assert result.output_path is None
	assert not output.exists()


#============================================
def test_slot_transform_rotation_and_reflection() -> None:
	geometry = layout.Geometry(100.0, 100.0, layout.Insets(10.0, 10.0, 10.0, 10.0), dpi=72.0)
	plain = render.compute_slot_transform(sheets.CardPlacement(50.0, 60.0), geometry, 200.0)
	assert tuple(plain.apply_on((10.0, 10.0))) == pytest.approx((50.0, 60.0))
	turned = render.compute_slot_transform(sheets.CardPlacement(50.0, 60.0, 180.0), geometry, 200.0)
	assert tuple(turned.apply_on((10.0, 10.0))) == pytest.approx((130.0, 140.0))
	mirrored = render.compute_slot_transform(sheets.CardPlacement(50.0, 60.0, None, "horizontal"), geometry, 200.0)
	assert tuple(mirrored.apply_on((10.0, 10.0))) == pytest.approx((130.0, 60.0))


#============================================
def test_crop_line_segments() -> None:
	sheet = sheets.Sheet(
		page_width=100.0,
		page_height=100.0,
		card_width=10.0,
		card_height=10.0,
		crop_lines=(
			sheets.CropLine("horizontal", 20.0, 10.0),
			sheets.CropLine("vertical", 30.0, 60.0),
		),
	)
	assert render.crop_line_segments(sheet) == [
		(0.0, 80.0, 10.0, 80.0),
		(90.0, 80.0, 100.0, 80.0),
		(30.0, 0.0, 30.0, 100.0),
	]


#============================================
def test_layout_text_wraps_and_breaks() -> None:
	run = painter.TextRun("aaa bbb ccc", "Helvetica", 10.0, BLACK)
	two_words = reportlab.pdfbase.pdfmetrics.stringWidth("aaa bbb", "Helvetica", 10.0)
	lines = painter.layout_text_runs([run], two_words + 1.0)
	assert ["".join(fragment.text for fragment in line.fragments) for line in lines] == ["aaa bbb", "ccc"]
	assert lines[0].width == pytest.approx(two_words)

	lines = painter.layout_text_runs([painter.TextRun("one\ntwo", "Helvetica", 10.0, BLACK)], 500.0)
	assert len(lines) == 2
	assert lines[0].hard_break


#============================================
def test_layout_text_keeps_styled_word_together() -> None:
	bold = painter.TextRun("Bo", "Helvetica-Bold", 10.0, BLACK)
	rest = painter.TextRun("ld", "Helvetica", 10.0, BLACK)
	lead = painter.TextRun("xx ", "Helvetica", 10.0, BLACK)
	width = reportlab.pdfbase.pdfmetrics.stringWidth("xx Bo", "Helvetica", 10.0)
	lines = painter.layout_text_runs([lead, bold, rest], width)
	assert [[fragment.text for fragment in line.fragments] for line in lines] == [["xx"], ["Bo", "ld"]]


#============================================
def test_map_font_name() -> None:
	assert painter.map_font_name(None, "bold", "italic") == "Helvetica-BoldOblique"
	assert painter.map_font_name("Times New Roman", "normal", None) == "Times-Roman"
	assert painter.map_font_name("serif", "black", "oblique") == "Times-BoldItalic"
	assert painter.map_font_name("monospace", "semibold", None) == "Courier-Bold"
	assert painter.map_font_name("Unheard Of", "light", None) == "Helvetica"


#============================================
def test_compute_align_offset() -> None:
	assert painter.compute_align_offset(100.0, 40.0, "left") == 0.0
	assert painter.compute_align_offset(100.0, 40.0, "center") == 30.0
	assert painter.compute_align_offset(100.0, 40.0, "right") == 60.0
	assert painter.compute_align_offset(100.0, 140.0, "right") == 0.0


#============================================
def test_sanitize_token() -> None:
	assert render.sanitize_token("goblin king/2") == "goblin_king_2"
	assert render.sanitize_token("///") == "card"


#============================================
def test_unique_output_stems_avoid_collisions(caplog: pytest.LogCaptureFixture) -> None:
	stems = render.unique_output_stems(["a b", "a_b", "A b", "a b", "orc"])
	assert stems == {"a b": "a_b", "a_b": "a_b_2", "A b": "A_b_3", "orc": "orc"}
	assert "a_b_2" in caplog.text


#============================================
def write_project(root: pathlib.Path, bad_card: bool = False) -> None:
	(root / "layouts").mkdir(parents=True)
	(root / "layouts" / "default.xml").write_text(CARD_LAYOUT, encoding="utf-8")
	(root / "project.xml").write_text(PROJECT_XML, encoding="utf-8")
	(root / "data").mkdir()
	rows = "id,name,layout\ngoblin,Goblin,\norc,Orc,\n"
	if bad_card:
		rows += "troll,Troll,huge\n"
	(root / "data" / "cards.csv").write_text(rows, encoding="utf-8")


#============================================
def test_cli_end_to_end(tmp_path: pathlib.Path) -> None:
	pytest.importorskip("fitz")
	project_dir = tmp_path / "project"
	write_project(project_dir)
	(tmp_path / "selection.txt").write_text("3 goblin\norc\n", encoding="utf-8")
	output_dir = tmp_path / "out"
	status = cli.main([
		str(project_dir),
		"-o", str(output_dir),
		"-f",
		"-s", "pair",
		"-l", str(tmp_path / "selection.txt"),
	])
	assert status == 0
	assert (output_dir / "png" / "goblin.png").exists()
	assert (output_dir / "pdf" / "orc.pdf").exists()
	reader = pypdf.PdfReader(str(output_dir / f"{config.DEFAULT_DECK_NAME}.pdf"))
	assert len(reader.pages) == 2


#============================================
def test_cli_keep_going_reports_failures(tmp_path: pathlib.Path) -> None:
	pytest.importorskip("fitz")
	project_dir = tmp_path / "project"
	write_project(project_dir, bad_card=True)
	output_dir = tmp_path / "out"
	assert cli.main([str(project_dir), "-o", str(output_dir)]) == 2
	assert not (output_dir / "png").exists()
	assert cli.main([str(project_dir), "-o", str(output_dir), "-k", "-j", "2"]) == 1
	assert (output_dir / "png" / "goblin.png").exists()
	assert (output_dir / "png" / "orc.png").exists()
	assert not (output_dir / "png" / "troll.png").exists()
