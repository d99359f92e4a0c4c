"""
Project registry: layouts, cards, colors, styles, images and sheet types.
"""

# Standard Library
import dataclasses
import logging
import pathlib
import typing
import xml.etree.ElementTree as StdElementTree

# PIP3 modules
import defusedxml.ElementTree as ElementTree
import reportlab.pdfbase.pdfmetrics
import reportlab.pdfbase.ttfonts

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.colors
import card_sheet_renderer.config
import card_sheet_renderer.errors
import card_sheet_renderer.layout
import card_sheet_renderer.records
import card_sheet_renderer.sheets
import card_sheet_renderer.styles


Card = csr.records.Card
Color = csr.colors.Color
ColorRef = csr.colors.ColorRef
Layout = csr.layout.Layout
PdfMetadata = csr.config.PdfMetadata
SheetType = csr.sheets.SheetType
TextStyle = csr.styles.TextStyle

ConfigurationError = csr.errors.ConfigurationError
InvalidColorName = csr.errors.InvalidColorName
NoLayoutFound = csr.errors.NoLayoutFound
NoSuchCard = csr.errors.NoSuchCard
ParseError = csr.errors.ParseError

DEFAULT_LAYOUT_NAME = csr.config.DEFAULT_LAYOUT_NAME
PROJECT_FILE = "project.xml"
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp")
FONT_SUFFIXES = (".ttf",)
DATA_SUFFIXES = (".csv", ".xlsx", ".xlsm")

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Project:
	"""
	Everything a render needs, built once at load time.

	Nothing here changes after loading finishes.
	"""

	root: pathlib.Path | None = None
	layouts: dict[str, Layout] = dataclasses.field(default_factory=dict)
	cards: dict[str, Card] = dataclasses.field(default_factory=dict)
	colors: dict[str, Color] = dataclasses.field(default_factory=dict)
	styles: dict[str, tuple[TextStyle, ...]] = dataclasses.field(default_factory=dict)
	images: dict[str, pathlib.Path] = dataclasses.field(default_factory=dict)
	sheet_types: dict[str, SheetType] = dataclasses.field(default_factory=dict)
	fonts: list[str] = dataclasses.field(default_factory=list)
	metadata: PdfMetadata = PdfMetadata()

	def add_cards(self, cards: typing.Iterable[Card], source: str = "") -> None:
		for card in cards:
			if card.id in self.cards:
				raise ConfigurationError(f"duplicate card id {card.id!r} {source}".strip())
			self.cards[card.id] = card

	def add_layout(self, layout: Layout) -> None:
		self.layouts[layout.name] = layout

	def card(self, card_id: str) -> Card:
		if card_id not in self.cards:
			raise NoSuchCard(card_id)
		return self.cards[card_id]

	def layout_for(self, card: Card) -> Layout:
		"""
		Pick the layout a card asks for.

		Args:
			card: Card instance.

		Returns:
			Layout named by the card's layout field, or the default layout.
		"""
		name = card.layout_name or DEFAULT_LAYOUT_NAME
		if name not in self.layouts:
			raise NoLayoutFound(name, card.id)
		return self.layouts[name]

	def color_named(self, name: str) -> Color:
		"""
		Resolve a color name: project colors first, then the built-in palette.

		Args:
			name: Color name.

		Returns:
			Color instance.
		"""
		key = csr.colors.canonical_color_name(name)
		if key in self.colors:
			return self.colors[key]
		builtin = csr.colors.builtin_color(key)
		if builtin is None:
			raise InvalidColorName(name)
		return builtin

	def resolve_color(self, color: ColorRef, card: Card) -> Color:
		if isinstance(color, csr.colors.StaticColor):
			return color.color
		if isinstance(color, csr.colors.NamedColor):
			return self.color_named(color.name.render(card))
		raise TypeError(f"not a color reference: {color!r}")

	def style_set(self, name: str) -> tuple[TextStyle, ...] | None:
		"""
		Look up a named style set: project styles first, then built-in presets.

		Args:
			name: Style or markup tag name.

		Returns:
			Style list, or None when no such style exists.
		"""
		if name in self.styles:
			return self.styles[name]
		return csr.styles.BUILTIN_STYLES.get(name)

	def image_path(self, name: str) -> pathlib.Path | None:
		return self.images.get(name)

	def sheet_type(self, name: str) -> SheetType:
		if name not in self.sheet_types:
			known = ", ".join(sorted(self.sheet_types)) or "none"
			raise ConfigurationError(f"unknown sheet type {name!r} (defined: {known})")
		return self.sheet_types[name]


#============================================
def parse_project_xml(data: bytes | str, project: Project, source: str | None = None) -> None:
	"""
	Read project.xml into a project.

	Args:
		data: XML document.
		project: Project to fill in.
		source: File path for error messages.
	"""
	try:
		root = ElementTree.fromstring(data)
	except StdElementTree.ParseError as error:
		line = error.position[0] if error.position else None
		raise ParseError(str(error), source, line) from error
	if root.tag != "project":
		raise ParseError(f"expected <project> root, found <{root.tag}>", source)

	try:
		for child in root:
			if child.tag == "metadata":
				project.metadata = PdfMetadata(
					title=child.get("title"),
					author=child.get("author"),
					subject=child.get("subject"),
					keywords=child.get("keywords"),
				)
			elif child.tag == "color":
				name = csr.layout.require_attribute(child, "name")
				value = csr.layout.require_attribute(child, "value")
				color = csr.colors.parse_static_color(value)
				if color is None:
					raise ConfigurationError(f"color {name!r} must be a literal color, not {value!r}")
				project.colors[csr.colors.canonical_color_name(name)] = color
			elif child.tag == "style":
				name = csr.layout.require_attribute(child, "name")
				project.styles[name] = tuple(csr.layout.parse_text_style(style) for style in child)
			elif child.tag == "sheet-type":
				sheet_type = csr.sheets.parse_sheet_type(child)
				project.sheet_types[sheet_type.name] = sheet_type
			else:
				raise ParseError(f"unexpected <{child.tag}> in project configuration", source)
	except ParseError as error:
		if error.path is not None or source is None:
			raise
		raise ParseError(str(error), source) from error
	except ConfigurationError as error:
		if source is None:
			raise
		raise ConfigurationError(f"{source}: {error}") from error


#============================================
def register_font(path: pathlib.Path) -> str:
	"""
	Register a TrueType font with ReportLab under its file stem.

	Args:
		path: Font file path.

	Returns:
		Registered font name.
	"""
	name = path.stem
	if name not in reportlab.pdfbase.pdfmetrics.getRegisteredFontNames():
		reportlab.pdfbase.pdfmetrics.registerFont(reportlab.pdfbase.ttfonts.TTFont(name, str(path)))
	return name


#============================================
def image_name_for(path: pathlib.Path, images_dir: pathlib.Path) -> str:
	"""
	Name an image by its path below the images directory, minus extension.

	Args:
		path: Image file path.
		images_dir: Images directory.

	Returns:
		Slash separated image name.
	"""
	return path.relative_to(images_dir).with_suffix("").as_posix()


#============================================
def load_project(root: pathlib.Path) -> Project:
	"""
	Load a project directory.

	Args:
		root: Directory holding project.xml, layouts/, images/, fonts/ and data/.

	Returns:
		Project instance.
	"""
	if not root.is_dir():
		raise ConfigurationError(f"project directory not found: {root}")
	project = Project(root=root)

	config_path = root / PROJECT_FILE
	if config_path.is_file():
		parse_project_xml(config_path.read_bytes(), project, str(config_path))

	for path in sorted((root / "layouts").glob("*.xml")):
		project.add_layout(csr.layout.load_layout(path))
		logger.debug("loaded layout %s", path)

	images_dir = root / "images"
	if images_dir.is_dir():
		for path in sorted(images_dir.rglob("*")):
			if path.is_file() and path.suffix.lower() in IMAGE_SUFFIXES:
				project.images[image_name_for(path, images_dir)] = path

	fonts_dir = root / "fonts"
	if fonts_dir.is_dir():
		for path in sorted(fonts_dir.iterdir()):
			if path.suffix.lower() in FONT_SUFFIXES:
				project.fonts.append(register_font(path))

	data_dir = root / "data"
	if data_dir.is_dir():
		for path in sorted(data_dir.iterdir()):
			if path.suffix.lower() in DATA_SUFFIXES and not path.name.startswith("~$"):
				project.add_cards(csr.records.load_cards(path), f"in {path}")

	if not project.layouts:
		logger.warning("project has no layouts: %s", root)
	return project
