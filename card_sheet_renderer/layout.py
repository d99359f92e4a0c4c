"""
Layout element tree and its XML reader.
"""

# Standard Library
import dataclasses
import pathlib
import xml.etree.ElementTree as StdElementTree

# PIP3 modules
import defusedxml.ElementTree as ElementTree

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.colors
import card_sheet_renderer.conditions
import card_sheet_renderer.config
import card_sheet_renderer.errors
import card_sheet_renderer.styles
import card_sheet_renderer.templates


ParseError = csr.errors.ParseError
TemplateAwareString = csr.templates.TemplateAwareString
OnlyIf = csr.conditions.OnlyIf
PathStyle = csr.styles.PathStyle
TextStyle = csr.styles.TextStyle

DEFAULT_DPI = csr.config.DEFAULT_DPI
SCALE_MODES = ("fit", "fill", "stretch", "none")


@dataclasses.dataclass(frozen=True)
class Insets:
	top: float = 0.0
	right: float = 0.0
	bottom: float = 0.0
	left: float = 0.0


@dataclasses.dataclass(frozen=True)
class Geometry:
	width: float
	height: float
	cut: Insets = Insets()
	safe: Insets = Insets()
	dpi: float = DEFAULT_DPI

	@property
	def content_width(self) -> float:
		return self.width - self.cut.left - self.cut.right

	@property
	def content_height(self) -> float:
		return self.height - self.cut.top - self.cut.bottom


@dataclasses.dataclass(frozen=True)
class Frame:
	x: float
	y: float
	width: float
	height: float

	@property
	def center(self) -> tuple[float, float]:
		return (self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclasses.dataclass(frozen=True)
class Background:
	styles: tuple[PathStyle, ...] = ()


@dataclasses.dataclass(frozen=True)
class Rectangle:
	frame: Frame
	styles: tuple[PathStyle, ...] = ()


@dataclasses.dataclass(frozen=True)
class Text:
	contents: TemplateAwareString
	frame: Frame
	style_name: str | None = None
	styles: tuple[TextStyle, ...] = ()


@dataclasses.dataclass(frozen=True)
class Image:
	name: TemplateAwareString
	frame: Frame
	scale: str = "fit"


@dataclasses.dataclass(frozen=True)
class Box:
	frame: Frame
	children: tuple["Element", ...] = ()


Element = Background | Rectangle | Text | Image | Box


@dataclasses.dataclass(frozen=True)
class Layout:
	name: str
	geometry: Geometry
	base_path_styles: tuple[PathStyle, ...] = ()
	base_text_styles: tuple[TextStyle, ...] = ()
	elements: tuple[Element, ...] = ()


#============================================
def split_numbers(value: str, what: str) -> list[float]:
	"""
	Parse a whitespace or comma separated list of numbers.

	Args:
		value: Attribute text.
		what: Description for error messages.

	Returns:
		List of floats.
	"""
	numbers: list[float] = []
	for token in value.replace(",", " ").split():
		try:
			numbers.append(float(token))
		except ValueError:
			raise ParseError(f"{what}: {token!r} is not a number") from None
	return numbers


#============================================
def expand_shorthand(values: list[float], what: str) -> tuple[float, float, float, float]:
	"""
	Expand 1, 2 or 4 values into (top, right, bottom, left).

	One value applies to every side, two are (vertical, horizontal).

	Args:
		values: Parsed values.
		what: Description for error messages.

	Returns:
		Four side values.
	"""
	if len(values) == 1:
		return (values[0], values[0], values[0], values[0])
	if len(values) == 2:
		return (values[0], values[1], values[0], values[1])
	if len(values) == 4:
		return (values[0], values[1], values[2], values[3])
	raise ParseError(f"{what} takes 1, 2 or 4 values, got {len(values)}")


#============================================
def parse_insets(value: str | None, what: str) -> Insets:
	if value is None or not value.strip():
		return Insets()
	return Insets(*expand_shorthand(split_numbers(value, what), what))


#============================================
def get_number(element: StdElementTree.Element, names: tuple[str, ...], default: float | None = None) -> float:
	"""
	Read a numeric attribute, accepting any of several spellings.

	Args:
		element: XML element.
		names: Attribute names to try in order.
		default: Value when absent; None makes the attribute required.

	Returns:
		Attribute value.
	"""
	for name in names:
		raw = element.get(name)
		if raw is None:
			continue
		try:
			return float(raw)
		except ValueError:
			raise ParseError(f"<{element.tag}> attribute {name}={raw!r} is not a number") from None
	if default is None:
		raise ParseError(f"<{element.tag}> requires attribute {names[0]!r}")
	return default


#============================================
def require_attribute(element: StdElementTree.Element, name: str) -> str:
	value = element.get(name)
	if value is None:
		raise ParseError(f"<{element.tag}> requires attribute {name!r}")
	return value


#============================================
def parse_frame(element: StdElementTree.Element) -> Frame:
	return Frame(
		x=get_number(element, ("x",), 0.0),
		y=get_number(element, ("y",), 0.0),
		width=get_number(element, ("w", "width")),
		height=get_number(element, ("h", "height")),
	)


#============================================
def parse_geometry(element: StdElementTree.Element) -> Geometry:
	return Geometry(
		width=get_number(element, ("width", "w")),
		height=get_number(element, ("height", "h")),
		cut=parse_insets(element.get("cut"), "cut"),
		safe=parse_insets(element.get("safe"), "safe"),
		dpi=get_number(element, ("dpi",), DEFAULT_DPI),
	)


#============================================
def parse_only_if(element: StdElementTree.Element) -> OnlyIf:
	"""
	Parse an <only-if left="..." op="..." right="..."> element.

	Further right operands may be given as <value> children.

	Args:
		element: XML element.

	Returns:
		OnlyIf instance.
	"""
	left = TemplateAwareString(require_attribute(element, "left"))
	operator = csr.conditions.parse_operator(element.get("op", element.get("operator")))
	right: list[TemplateAwareString] = []
	if element.get("right") is not None:
		right.append(TemplateAwareString(element.get("right")))
	for child in element:
		if child.tag != "value":
			raise ParseError(f"unexpected <{child.tag}> inside <only-if>")
		right.append(TemplateAwareString(child.text or ""))
	if operator is not None and not right:
		raise ParseError(f"only-if operator {operator!r} needs a right-hand value")
	return OnlyIf(left, operator, tuple(right))


#============================================
def parse_path_style(element: StdElementTree.Element) -> PathStyle:
	if element.tag == "stroke":
		return csr.styles.Stroke(
			width=get_number(element, ("width",), 1.0),
			color=csr.colors.parse_color(element.get("color", "black")),
			pattern=csr.styles.parse_dash_pattern(element.get("pattern", "solid")),
		)
	if element.tag in ("solid", "fill"):
		return csr.styles.Solid(csr.colors.parse_color(require_attribute(element, "color")))
	if element.tag == "only-if":
		return parse_only_if(element)
	raise ParseError(f"unknown path style <{element.tag}>")


#============================================
def parse_text_style(element: StdElementTree.Element) -> TextStyle:
	if element.tag == "font":
		weight = element.get("weight")
		width = element.get("width")
		slant = element.get("slant", element.get("style"))
		return csr.styles.Font(
			family=element.get("family"),
			weight=csr.styles.parse_font_weight(weight) if weight is not None else None,
			width=csr.styles.parse_font_width(width) if width is not None else None,
			slant=csr.styles.parse_font_slant(slant) if slant is not None else None,
		)
	if element.tag == "size":
		units = element.get("units", "px").strip().lower()
		if units not in csr.styles.SIZE_UNITS:
			raise ParseError(f"invalid size units {units!r}")
		return csr.styles.Size(get_number(element, ("value",)), units)
	if element.tag == "align":
		mode = element.get("mode", element.text or "")
		return csr.styles.Align(csr.styles.parse_alignment(mode))
	if element.tag in ("foreground", "color"):
		return csr.styles.Foreground(csr.colors.parse_color(require_attribute(element, "color")))
	if element.tag == "background":
		return csr.styles.Background(csr.colors.parse_color(require_attribute(element, "color")))
	if element.tag == "only-if":
		return parse_only_if(element)
	raise ParseError(f"unknown text style <{element.tag}>")


#============================================
def parse_text_element(element: StdElementTree.Element) -> Text:
	contents = element.get("contents")
	styles: list[TextStyle] = []
	for child in element:
		if child.tag == "contents":
			contents = child.text or ""
			continue
		styles.append(parse_text_style(child))
	return Text(
		contents=TemplateAwareString(contents or ""),
		frame=parse_frame(element),
		style_name=element.get("style"),
		styles=tuple(styles),
	)


#============================================
def parse_element(element: StdElementTree.Element) -> Element:
	"""
	Parse one layout element and its children.

	Args:
		element: XML element.

	Returns:
		Element instance.
	"""
	if element.tag == "background":
		return Background(tuple(parse_path_style(child) for child in element))
	if element.tag in ("rectangle", "rect"):
		return Rectangle(parse_frame(element), tuple(parse_path_style(child) for child in element))
	if element.tag == "text":
		return parse_text_element(element)
	if element.tag == "image":
		scale = element.get("scale", "fit").strip().lower()
		if scale not in SCALE_MODES:
			raise ParseError(f"invalid image scale mode {scale!r}")
		return Image(TemplateAwareString(require_attribute(element, "name")), parse_frame(element), scale)
	if element.tag == "box":
		return Box(parse_frame(element), tuple(parse_element(child) for child in element))
	raise ParseError(f"unknown layout element <{element.tag}>")


#============================================
def parse_layout_xml(data: bytes | str, name: str, source: str | None = None) -> Layout:
	"""
	Parse layout XML.

	Args:
		data: XML document.
		name: Layout name.
		source: File path for error messages.

	Returns:
		Layout instance.
	"""
	try:
		root = ElementTree.fromstring(data)
	except StdElementTree.ParseError as error:
		line = error.position[0] if error.position else None
		raise ParseError(str(error), source, line) from error
	if root.tag != "layout":
		raise ParseError(f"expected <layout> root, found <{root.tag}>", source)

	try:
		geometry: Geometry | None = None
		base_path: list[PathStyle] = []
		base_text: list[TextStyle] = []
		elements: list[Element] = []
		for child in root:
			if child.tag == "geometry":
				geometry = parse_geometry(child)
			elif child.tag == "base":
				for base in child:
					if base.tag == "path":
						base_path.extend(parse_path_style(style) for style in base)
					elif base.tag == "text":
						base_text.extend(parse_text_style(style) for style in base)
					else:
						raise ParseError(f"unexpected <{base.tag}> inside <base>")
			else:
				elements.append(parse_element(child))
		if geometry is None:
			raise ParseError("layout has no <geometry>")
	except ParseError as error:
		if error.path is not None or source is None:
			raise
		raise ParseError(str(error), source) from error

	return Layout(
		name=name,
		geometry=geometry,
		base_path_styles=tuple(base_path),
		base_text_styles=tuple(base_text),
		elements=tuple(elements),
	)


#============================================
def load_layout(path: pathlib.Path) -> Layout:
	"""
	Load a layout file; the layout is named after the file stem.

	Args:
		path: Layout XML path.

	Returns:
		Layout instance.
	"""
	return parse_layout_xml(path.read_bytes(), path.stem, str(path))
