"""
Template-aware strings resolved against card data.
"""

# Standard Library
import typing

# PIP3 modules
import jinja2

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.errors


TemplateError = csr.errors.TemplateError

TEMPLATE_MARKERS = ("{{", "{%")

ENVIRONMENT = jinja2.Environment(
	autoescape=False,
	keep_trailing_newline=True,
)


#============================================
def line_offset(source: str, lineno: int | None) -> int | None:
	"""
	Convert a 1-based line number into a character offset.

	Args:
		source: Template source text.
		lineno: Line number reported by the engine.

	Returns:
		Offset of the first character of that line, or None.
	"""
	if lineno is None or lineno < 1:
		return None
	offset = 0
	for index, line in enumerate(source.splitlines(keepends=True), start=1):
		if index == lineno:
			return offset
		offset += len(line)
	return offset


class TemplateAwareString:
	"""
	A string that is either a raw literal or a compiled template.

	The classification happens once, when the string is built from layout or
	configuration data; raw literals never reach the template engine.
	"""

	__slots__ = ("source", "_template")

	def __init__(self, source: str):
		self.source = source
		self._template: jinja2.Template | None = None
		if any(marker in source for marker in TEMPLATE_MARKERS):
			try:
				self._template = ENVIRONMENT.from_string(source)
			except jinja2.TemplateSyntaxError as error:
				raise TemplateError(error.message or str(error), source, line_offset(source, error.lineno)) from error

	@property
	def is_template(self) -> bool:
		return self._template is not None

	def render(self, card: typing.Any) -> str:
		"""
		Resolve the string for one card.

		Args:
			card: Card whose memoized template context supplies the fields.

		Returns:
			The rendered text.
		"""
		if self._template is None:
			return self.source
		try:
			return self._template.render(card.template_context)
		except jinja2.TemplateError as error:
			raise TemplateError(str(error), self.source) from error
		except (TypeError, ValueError, ArithmeticError, LookupError, AttributeError) as error:
			# expressions over card fields fail with plain Python errors
			raise TemplateError(f"{type(error).__name__}: {error}", self.source) from error

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, TemplateAwareString):
			return NotImplemented
		return self.source == other.source

	def __hash__(self) -> int:
		return hash(self.source)

	def __repr__(self) -> str:
		kind = "template" if self.is_template else "raw"
		return f"TemplateAwareString({kind}, {self.source!r})"
