"""
Shared configuration and constants.
"""

# Standard Library
import dataclasses


APP_NAME = "card-sheet-renderer"
APP_VERSION = "0.3.0"

POINTS_PER_INCH = 72.0
POINTS_PER_MILLIMETER = POINTS_PER_INCH / 25.4
DEFAULT_DPI = 300.0
DEFAULT_LAYOUT_NAME = "default"
DEFAULT_TEXT_SIZE_PX = 14.0
DEFAULT_DECK_NAME = "deck"

DEFAULT_FONT_REGULAR = "Helvetica"
DEFAULT_FONT_BOLD = "Helvetica-Bold"
DEFAULT_FONT_ITALIC = "Helvetica-Oblique"
DEFAULT_FONT_BOLD_ITALIC = "Helvetica-BoldOblique"
LINE_HEIGHT_FACTOR = 1.2

CROP_LINE_WIDTH = 0.5
PLACEHOLDER_TEXT_SIZE_PT = 6.0
PLACEHOLDER_STROKE_WIDTH = 1.0
PROGRESS_BAR_WIDTH = 20

UNIT_POINTS = {
	"in": POINTS_PER_INCH,
	"pt": 1.0,
	"mm": POINTS_PER_MILLIMETER,
}

# width, height in inches
PAGE_SIZES_INCHES = {
	"letter": (8.5, 11.0),
	"legal": (8.5, 14.0),
	"tabloid": (11.0, 17.0),
	"ledger": (17.0, 11.0),
}
PAGE_SIZES_MM = {
	"a0": (841.0, 1189.0),
	"a1": (594.0, 841.0),
	"a2": (420.0, 594.0),
	"a3": (297.0, 420.0),
	"a4": (210.0, 297.0),
	"a5": (148.0, 210.0),
	"a6": (105.0, 148.0),
	"a7": (74.0, 105.0),
	"a8": (52.0, 74.0),
}
CARD_SIZES_MM = {
	"poker": (63.0, 88.0),
	"bridge": (56.0, 88.0),
	"tarot": (70.0, 121.0),
	"mini": (44.0, 64.0),
	"small square": (63.0, 63.0),
	"large square": (88.0, 88.0),
}


@dataclasses.dataclass(frozen=True)
class PdfMetadata:
	title: str | None = None
	author: str | None = None
	subject: str | None = None
	keywords: str | None = None

	@property
	def creator(self) -> str:
		return f"{APP_NAME} v{APP_VERSION}"


@dataclasses.dataclass
class RunConfig:
	project_dir: str
	output_dir: str
	write_png: bool
	write_pdf: bool
	sheet_type: str | None
	deck_name: str
	selection_path: str | None
	card_ids: list[str] | None
	keep_going: bool
	jobs: int
	verbose: bool


@dataclasses.dataclass
class SheetResult:
	total_cards: int
	cards_per_page: int
	pages: int
	output_path: str | None


#============================================
def pixels_to_points(value: float, dpi: float) -> float:
	"""
	Convert layout pixels at a given resolution to points.

	Args:
		value: Pixel value.
		dpi: Layout resolution.

	Returns:
		Points value.
	"""
	return value * POINTS_PER_INCH / dpi
