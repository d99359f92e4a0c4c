"""
Color literals, named references and the built-in palette.
"""

# Standard Library
import dataclasses
import re

# PIP3 modules
import reportlab.lib.colors

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.errors
import card_sheet_renderer.templates


ColorParseError = csr.errors.ColorParseError
TemplateAwareString = csr.templates.TemplateAwareString

FUNCTION_PATTERN = re.compile(r"^(rgba?)\s*\((.*)\)$", re.IGNORECASE | re.DOTALL)
HEX_PATTERN = re.compile(r"^#([0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


@dataclasses.dataclass(frozen=True)
class Color:
	red: int
	green: int
	blue: int
	alpha: int = 255

	def to_reportlab(self) -> reportlab.lib.colors.Color:
		return reportlab.lib.colors.Color(
			self.red / 255.0,
			self.green / 255.0,
			self.blue / 255.0,
			alpha=self.alpha / 255.0,
		)

	@property
	def is_transparent(self) -> bool:
		return self.alpha == 0


@dataclasses.dataclass(frozen=True)
class StaticColor:
	color: Color


@dataclasses.dataclass(frozen=True)
class NamedColor:
	name: TemplateAwareString


ColorRef = StaticColor | NamedColor


BUILTIN_COLORS = {
	"transparent": Color(0x00, 0x00, 0x00, 0x00),
	"black": Color(0x00, 0x00, 0x00),
	"dark gray": Color(0x44, 0x44, 0x44),
	"gray": Color(0x88, 0x88, 0x88),
	"light gray": Color(0xCC, 0xCC, 0xCC),
	"white": Color(0xFF, 0xFF, 0xFF),
	"red": Color(0xFF, 0x00, 0x00),
	"green": Color(0x00, 0xFF, 0x00),
	"blue": Color(0x00, 0x00, 0xFF),
	"yellow": Color(0xFF, 0xFF, 0x00),
	"cyan": Color(0x00, 0xFF, 0xFF),
	"magenta": Color(0xFF, 0x00, 0xFF),
}


#============================================
def parse_component(value: str, source: str) -> int:
	"""
	Parse one 0-255 color component.

	Args:
		value: Component text.
		source: Whole color literal, for error messages.

	Returns:
		Component value.
	"""
	text = value.strip()
	if not text.isdigit() or int(text) > 255:
		raise ColorParseError(f"invalid color component {text!r} in {source!r}")
	return int(text)


#============================================
def parse_static_color(value: str) -> Color | None:
	"""
	Parse a literal color.

	Accepts "rgb(r, g, b)", "rgba(r, g, b, a)", "#RRGGBB" and "#RRGGBBAA".

	Args:
		value: Color text.

	Returns:
		Color, or None when the text is not a literal.
	"""
	text = value.strip()
	hex_match = HEX_PATTERN.match(text)
	if hex_match:
		digits = hex_match.group(1)
		channels = [int(digits[index:index + 2], 16) for index in range(0, len(digits), 2)]
		return Color(*channels)
	function_match = FUNCTION_PATTERN.match(text)
	if function_match is None:
		return None
	kind = function_match.group(1).lower()
	components = function_match.group(2).split(",")
	expected = 4 if kind == "rgba" else 3
	if len(components) != expected:
		raise ColorParseError(f"{kind}() takes {expected} components: {value!r}")
	return Color(*[parse_component(component, value) for component in components])


#============================================
def parse_color(value: str) -> ColorRef:
	"""
	Parse a color reference from layout or configuration text.

	Args:
		value: Literal color or color name (which may be a template).

	Returns:
		StaticColor for literals, NamedColor otherwise.
	"""
	color = parse_static_color(value)
	if color is not None:
		return StaticColor(color)
	return NamedColor(TemplateAwareString(value.strip()))


#============================================
def canonical_color_name(name: str) -> str:
	"""
	Normalize a color name for lookup.

	Args:
		name: Color name.

	Returns:
		Lowercase name with runs of whitespace collapsed.
	"""
	return " ".join(name.split()).lower()


#============================================
def builtin_color(name: str) -> Color | None:
	return BUILTIN_COLORS.get(canonical_color_name(name))
