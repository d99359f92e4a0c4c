"""
Path and text styles, dash patterns and the text style cascade.
"""

# Standard Library
import dataclasses
import typing

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.colors
import card_sheet_renderer.conditions
import card_sheet_renderer.errors


Color = csr.colors.Color
ColorRef = csr.colors.ColorRef
StaticColor = csr.colors.StaticColor
OnlyIf = csr.conditions.OnlyIf
DashPatternError = csr.errors.DashPatternError
RenderError = csr.errors.RenderError

DOT_LENGTH = 1
DASH_LENGTH = 3

FONT_WEIGHTS = {
	"thin": 100,
	"extralight": 200,
	"light": 300,
	"normal": 400,
	"medium": 500,
	"semibold": 600,
	"bold": 700,
	"extrabold": 800,
	"black": 900,
	"extrablack": 950,
}
FONT_WIDTHS = (
	"ultracondensed",
	"condensed",
	"semicondensed",
	"normal",
	"semiwide",
	"wide",
	"ultrawide",
)
FONT_SLANTS = ("normal", "italic", "oblique")
ALIGNMENTS = ("left", "center", "right", "justify")
SIZE_UNITS = ("px", "pt")


#============================================
def canonical_keyword(value: str) -> str:
	"""
	Normalize a keyword such as "Extra-Bold" to "extrabold".

	Args:
		value: Keyword text.

	Returns:
		Lowercase keyword with spaces, hyphens and underscores removed.
	"""
	return "".join(char for char in value.lower() if char not in " -_")


#============================================
def parse_font_weight(value: str) -> str:
	name = canonical_keyword(value)
	if name not in FONT_WEIGHTS:
		return "normal"
	return name


#============================================
def parse_font_width(value: str) -> str:
	name = canonical_keyword(value)
	if name not in FONT_WIDTHS:
		return "normal"
	return name


#============================================
def parse_font_slant(value: str) -> str:
	name = canonical_keyword(value)
	if name not in FONT_SLANTS:
		return "normal"
	return name


#============================================
def parse_alignment(value: str) -> str:
	name = canonical_keyword(value)
	if name in ("start", "left"):
		return "left"
	if name in ("middle", "centre"):
		return "center"
	if name == "end":
		return "right"
	if name not in ALIGNMENTS:
		return "left"
	return name


@dataclasses.dataclass(frozen=True)
class DashPattern:
	"""Stroke dash pattern; segments is None for a solid line."""

	segments: tuple[int, ...] | None = None

	@property
	def is_solid(self) -> bool:
		return self.segments is None

	def scaled(self, width: float) -> list[float] | None:
		"""
		Scale the pattern to a stroke width.

		Args:
			width: Stroke width.

		Returns:
			Dash lengths for the backend, or None for a solid line.
		"""
		if self.segments is None:
			return None
		lengths = [segment * width for segment in self.segments]
		if sum(lengths) <= 0:
			raise RenderError(f"cannot build dash pattern from segments {list(self.segments)} at width {width}")
		return lengths


#============================================
def parse_dash_pattern(pattern: str) -> DashPattern:
	"""
	Compile a dash pattern.

	"dotted" and "dashed" are presets. Any other text is read as a run of
	marks and gaps: '.' is a mark of length 1, '-' a mark of length 3, and
	each space adds 1 to the following gap. Adjacent marks merge into one
	segment, as do adjacent spaces.

	Args:
		pattern: Pattern text.

	Returns:
		DashPattern instance.
	"""
	keyword = pattern.strip().lower()
	if keyword in ("", "solid"):
		return DashPattern()
	if keyword == "dotted":
		return DashPattern((1, 1))
	if keyword == "dashed":
		return DashPattern((3, 1))

	segments: list[int] = []
	reading_marks = True
	length = 0
	for offset, char in enumerate(pattern):
		if char in ".-":
			step = DOT_LENGTH if char == "." else DASH_LENGTH
			if reading_marks:
				length += step
			else:
				segments.append(length)
				reading_marks = True
				length = step
		elif char == " ":
			if reading_marks:
				segments.append(length)
				reading_marks = False
				length = 1
			else:
				length += 1
		else:
			raise DashPatternError(char, pattern, offset)
	segments.append(length)
	return DashPattern(tuple(segments))


#============================================
def format_dash_segments(segments: typing.Sequence[int]) -> str:
	"""
	Encode segment lengths back into pattern text.

	Marks are written as dots and gaps as spaces, so parsing the result
	gives back the same lengths.

	Args:
		segments: Alternating mark and gap lengths, starting with a mark.

	Returns:
		Pattern text.
	"""
	parts: list[str] = []
	for index, length in enumerate(segments):
		parts.append(("." if index % 2 == 0 else " ") * length)
	return "".join(parts)


@dataclasses.dataclass(frozen=True)
class Stroke:
	width: float
	color: ColorRef
	pattern: DashPattern = DashPattern()


@dataclasses.dataclass(frozen=True)
class Solid:
	color: ColorRef


PathStyle = Stroke | Solid | OnlyIf


@dataclasses.dataclass(frozen=True)
class Font:
	family: str | None = None
	weight: str | None = None
	width: str | None = None
	slant: str | None = None


@dataclasses.dataclass(frozen=True)
class Size:
	value: float
	units: str = "px"

	def to_pixels(self, dpi: float) -> float:
		if self.units == "pt":
			return self.value * dpi / 72.0
		return self.value


@dataclasses.dataclass(frozen=True)
class Align:
	mode: str


@dataclasses.dataclass(frozen=True)
class Foreground:
	color: ColorRef


@dataclasses.dataclass(frozen=True)
class Background:
	color: ColorRef


TextStyle = Font | Size | Align | Foreground | Background | OnlyIf


@dataclasses.dataclass(frozen=True)
class FlatTextStyle:
	"""
	A fully cascaded text style.

	Attributes left as None were never set by any layer.
	"""

	foreground: ColorRef | None = None
	background: ColorRef | None = None
	size: Size | None = None
	align: str = "left"
	font_family: str | None = None
	font_weight: str = "normal"
	font_width: str = "normal"
	font_slant: str | None = None
	conditions: tuple[OnlyIf, ...] = ()

	def apply(self, styles: typing.Iterable[TextStyle]) -> "FlatTextStyle":
		"""
		Layer styles on top of this one.

		Later styles override earlier ones per attribute; attributes a style
		does not set are left alone; conditions accumulate.

		Args:
			styles: Styles in declaration order.

		Returns:
			New FlatTextStyle.
		"""
		changes: dict[str, typing.Any] = {}
		conditions = list(self.conditions)
		for style in styles:
			if isinstance(style, Font):
				if style.family is not None:
					changes["font_family"] = style.family
				if style.weight is not None:
					changes["font_weight"] = style.weight
				if style.width is not None:
					changes["font_width"] = style.width
				if style.slant is not None:
					changes["font_slant"] = style.slant
			elif isinstance(style, Size):
				changes["size"] = style
			elif isinstance(style, Align):
				changes["align"] = style.mode
			elif isinstance(style, Foreground):
				changes["foreground"] = style.color
			elif isinstance(style, Background):
				changes["background"] = style.color
			elif isinstance(style, OnlyIf):
				conditions.append(style)
			else:
				raise TypeError(f"not a text style: {style!r}")
		if len(conditions) != len(self.conditions):
			changes["conditions"] = tuple(conditions)
		if not changes:
			return self
		return dataclasses.replace(self, **changes)


#============================================
def build_builtin_styles() -> dict[str, tuple[TextStyle, ...]]:
	"""
	Build the style sets available to markup tags without configuration.

	Returns:
		Mapping of tag name to style list.
	"""
	presets: dict[str, tuple[TextStyle, ...]] = {
		"b": (Font(weight="bold"),),
		"bold": (Font(weight="bold"),),
		"i": (Font(slant="italic"),),
		"italic": (Font(slant="italic"),),
	}
	for name, color in csr.colors.BUILTIN_COLORS.items():
		presets[name.replace(" ", "-")] = (Foreground(StaticColor(color)),)
	return presets


BUILTIN_STYLES = build_builtin_styles()


@dataclasses.dataclass(frozen=True)
class ResolvedPathStyle:
	fill: Color | None = None
	stroke_color: Color | None = None
	stroke_width: float = 0.0
	dashes: list[float] | None = None

	@property
	def has_stroke(self) -> bool:
		return self.stroke_color is not None and self.stroke_width > 0


#============================================
def resolve_path_style(
	styles: typing.Iterable[PathStyle],
	card: typing.Any,
	resolve_color: typing.Callable[[ColorRef, typing.Any], Color],
) -> ResolvedPathStyle | None:
	"""
	Resolve a shape's style list for one card.

	Conditions are checked first; colors are only resolved for visible
	shapes. The last Solid and the last Stroke win.

	Args:
		styles: Path styles in declaration order.
		card: Card being rendered.
		resolve_color: Callable turning a ColorRef into a Color.

	Returns:
		ResolvedPathStyle, or None when a condition hides the shape.
	"""
	styles = list(styles)
	conditions = [style for style in styles if isinstance(style, OnlyIf)]
	if not csr.conditions.all_conditions_hold(conditions, card):
		return None
	solid: Solid | None = None
	stroke: Stroke | None = None
	for style in styles:
		if isinstance(style, Solid):
			solid = style
		elif isinstance(style, Stroke):
			stroke = style
		elif not isinstance(style, OnlyIf):
			raise TypeError(f"not a path style: {style!r}")
	resolved = ResolvedPathStyle()
	if solid is not None:
		resolved = dataclasses.replace(resolved, fill=resolve_color(solid.color, card))
	if stroke is not None:
		resolved = dataclasses.replace(
			resolved,
			stroke_color=resolve_color(stroke.color, card),
			stroke_width=stroke.width,
			dashes=stroke.pattern.scaled(stroke.width),
		)
	return resolved
