"""
ReportLab drawing backend.

The painter works in layout pixels with the origin at the top-left corner of
the card and y growing downward; it converts to PDF points on the canvas.
"""

# Standard Library
import dataclasses
import re

# PIP3 modules
import reportlab.lib.utils
import reportlab.pdfbase.pdfmetrics
import reportlab.pdfgen.canvas

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.colors
import card_sheet_renderer.config
import card_sheet_renderer.layout


Color = csr.colors.Color
Frame = csr.layout.Frame

POINTS_PER_INCH = csr.config.POINTS_PER_INCH
DEFAULT_FONT_REGULAR = csr.config.DEFAULT_FONT_REGULAR
DEFAULT_FONT_BOLD = csr.config.DEFAULT_FONT_BOLD
DEFAULT_FONT_ITALIC = csr.config.DEFAULT_FONT_ITALIC
DEFAULT_FONT_BOLD_ITALIC = csr.config.DEFAULT_FONT_BOLD_ITALIC
LINE_HEIGHT_FACTOR = csr.config.LINE_HEIGHT_FACTOR

BOLD_WEIGHTS = ("semibold", "bold", "extrabold", "black", "extrablack")
STANDARD_FAMILIES = {
	"helvetica": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique"),
	"times": ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic"),
	"courier": ("Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique"),
}
FAMILY_ALIASES = {
	"arial": "helvetica",
	"sans": "helvetica",
	"sansserif": "helvetica",
	"serif": "times",
	"timesnewroman": "times",
	"timesroman": "times",
	"mono": "courier",
	"monospace": "courier",
	"couriernew": "courier",
}
TOKEN_PATTERN = re.compile(r"(\n| +|\t)")


@dataclasses.dataclass(frozen=True)
class LoadedImage:
	reader: reportlab.lib.utils.ImageReader
	width: int
	height: int

	@property
	def aspect(self) -> float:
		if self.height <= 0:
			return 1.0
		return self.width / self.height


@dataclasses.dataclass(frozen=True)
class TextRun:
	text: str
	font_name: str
	size: float
	color: Color
	background: Color | None = None
	icon: LoadedImage | None = None


@dataclasses.dataclass
class Fragment:
	run: TextRun
	text: str
	width: float
	is_space: bool = False


@dataclasses.dataclass
class TextLine:
	fragments: list[Fragment]
	width: float
	ascent: float
	descent: float
	height: float
	hard_break: bool


#============================================
def map_font_name(family: str | None, weight: str, slant: str | None) -> str:
	"""
	Map cascaded font properties to a ReportLab font name.

	Project fonts registered as "<family>", "<family>-Bold", "<family>-Italic"
	and "<family>-BoldItalic" are used when present; otherwise the family maps
	onto one of the standard PDF fonts.

	Args:
		family: Font family, or None for the default.
		weight: Font weight keyword.
		slant: Font slant keyword, or None.

	Returns:
		ReportLab font name.
	"""
	is_bold = weight in BOLD_WEIGHTS
	is_italic = slant in ("italic", "oblique")
	if family:
		registered = set(reportlab.pdfbase.pdfmetrics.getRegisteredFontNames())
		suffix = ""
		if is_bold and is_italic:
			suffix = "-BoldItalic"
		elif is_bold:
			suffix = "-Bold"
		elif is_italic:
			suffix = "-Italic"
		for candidate in (family + suffix, family):
			if candidate in registered:
				return candidate
		key = "".join(char for char in family.lower() if char.isalnum())
		key = FAMILY_ALIASES.get(key, key)
		if key in STANDARD_FAMILIES:
			regular, bold, italic, bold_italic = STANDARD_FAMILIES[key]
			if is_bold and is_italic:
				return bold_italic
			if is_italic:
				return italic
			if is_bold:
				return bold
			return regular
	if is_bold and is_italic:
		return DEFAULT_FONT_BOLD_ITALIC
	if is_italic:
		return DEFAULT_FONT_ITALIC
	if is_bold:
		return DEFAULT_FONT_BOLD
	return DEFAULT_FONT_REGULAR


#============================================
def compute_align_offset(available: float, used: float, align: str) -> float:
	"""
	Compute a horizontal alignment offset.

	Args:
		available: Available width.
		used: Width taken by the content.
		align: "left", "center", "right" or "justify".

	Returns:
		Offset from the left edge.
	"""
	if align == "right":
		return max(0.0, available - used)
	if align == "center":
		return max(0.0, (available - used) / 2.0)
	return 0.0


#============================================
def run_metrics(run: TextRun) -> tuple[float, float]:
	"""
	Get the ascent and descent of a run, both positive.

	Args:
		run: Text run.

	Returns:
		Tuple of (ascent, descent).
	"""
	if run.icon is not None:
		return (run.size, 0.0)
	ascent = reportlab.pdfbase.pdfmetrics.getAscent(run.font_name) * run.size / 1000.0
	descent = -reportlab.pdfbase.pdfmetrics.getDescent(run.font_name) * run.size / 1000.0
	return (ascent, descent)


#============================================
def measure(text: str, run: TextRun) -> float:
	return reportlab.pdfbase.pdfmetrics.stringWidth(text, run.font_name, run.size)


#============================================
def build_line(fragments: list[Fragment], hard_break: bool, fallback: TextRun | None) -> TextLine:
	"""
	Close a line: drop trailing spaces and measure it.

	Args:
		fragments: Fragments placed on the line.
		hard_break: Whether the line ended at a newline.
		fallback: Run used for the metrics of an empty line.

	Returns:
		TextLine instance.
	"""
	while fragments and fragments[-1].is_space:
		fragments.pop()
	runs = [fragment.run for fragment in fragments]
	if not runs and fallback is not None:
		runs = [fallback]
	ascent = 0.0
	descent = 0.0
	size = 0.0
	for run in runs:
		run_ascent, run_descent = run_metrics(run)
		ascent = max(ascent, run_ascent)
		descent = max(descent, run_descent)
		size = max(size, run.size)
	width = sum(fragment.width for fragment in fragments)
	return TextLine(fragments, width, ascent, descent, size * LINE_HEIGHT_FACTOR, hard_break)


#============================================
def layout_text_runs(runs: list[TextRun], max_width: float) -> list[TextLine]:
	"""
	Break styled runs into lines no wider than max_width.

	Lines break at spaces and newlines. A word made of several runs stays
	together; a single word wider than the frame overflows on its own line.

	Args:
		runs: Styled runs in reading order.
		max_width: Frame width.

	Returns:
		List of TextLine.
	"""
	lines: list[TextLine] = []
	current: list[Fragment] = []
	word: list[Fragment] = []
	last_run: TextRun | None = None

	def current_width() -> float:
		return sum(fragment.width for fragment in current)

	def place_word() -> None:
		nonlocal current
		if not word:
			return
		word_width = sum(fragment.width for fragment in word)
		has_content = any(not fragment.is_space for fragment in current)
		if has_content and current_width() + word_width > max_width:
			lines.append(build_line(current, False, last_run))
			current = []
		current.extend(word)
		word.clear()

	for run in runs:
		last_run = run
		if run.icon is not None:
			word.append(Fragment(run, "", run.size * run.icon.aspect))
			continue
		for token in TOKEN_PATTERN.split(run.text):
			if not token:
				continue
			if token == "\n":
				place_word()
				lines.append(build_line(current, True, last_run))
				current = []
			elif token.isspace():
				place_word()
				text = token.replace("\t", " ")
				current.append(Fragment(run, text, measure(text, run), is_space=True))
			else:
				word.append(Fragment(run, token, measure(token, run)))
	place_word()
	if current or not lines:
		lines.append(build_line(current, True, last_run))
	return lines


class PdfPainter:
	"""
	Paint layout primitives onto one ReportLab canvas page.
	"""

	def __init__(self, pdf: reportlab.pdfgen.canvas.Canvas, height: float, dpi: float):
		self.pdf = pdf
		self.dpi = dpi
		scale = POINTS_PER_INCH / dpi
		pdf.translate(0.0, height * scale)
		pdf.scale(scale, -scale)

	def save_state(self) -> None:
		self.pdf.saveState()

	def restore_state(self) -> None:
		self.pdf.restoreState()

	def translate(self, x: float, y: float) -> None:
		self.pdf.translate(x, y)

	def clip_rect(self, frame: Frame) -> None:
		path = self.pdf.beginPath()
		path.rect(frame.x, frame.y, frame.width, frame.height)
		self.pdf.clipPath(path, stroke=0, fill=0)

	def fill_rect(self, frame: Frame, color: Color) -> None:
		if color.is_transparent:
			return
		self.pdf.setFillColor(color.to_reportlab())
		self.pdf.rect(frame.x, frame.y, frame.width, frame.height, stroke=0, fill=1)

	def stroke_rect(self, frame: Frame, width: float, color: Color, dashes: list[float] | None = None) -> None:
		if color.is_transparent:
			return
		self.pdf.setLineWidth(width)
		self.pdf.setStrokeColor(color.to_reportlab())
		if dashes:
			self.pdf.setDash(dashes, 0)
		else:
			self.pdf.setDash([], 0)
		self.pdf.rect(frame.x, frame.y, frame.width, frame.height, stroke=1, fill=0)

	def draw_line(self, start: tuple[float, float], end: tuple[float, float], width: float, color: Color) -> None:
		self.pdf.setLineWidth(width)
		self.pdf.setStrokeColor(color.to_reportlab())
		self.pdf.setDash([], 0)
		self.pdf.line(start[0], start[1], end[0], end[1])

	def draw_image(self, image: LoadedImage, frame: Frame) -> None:
		# images draw bottom-up, so flip locally
		self.pdf.saveState()
		self.pdf.translate(frame.x, frame.y + frame.height)
		self.pdf.scale(1.0, -1.0)
		self.pdf.drawImage(image.reader, 0.0, 0.0, frame.width, frame.height, mask="auto")
		self.pdf.restoreState()

	def draw_string(self, text: str, x: float, baseline: float, run: TextRun) -> None:
		self.pdf.saveState()
		self.pdf.translate(x, baseline)
		self.pdf.scale(1.0, -1.0)
		self.pdf.setFont(run.font_name, run.size)
		self.pdf.setFillColor(run.color.to_reportlab())
		self.pdf.drawString(0.0, 0.0, text)
		self.pdf.restoreState()

	def draw_text(self, runs: list[TextRun], frame: Frame, align: str) -> None:
		"""
		Lay out and paint styled runs inside a frame.

		Args:
			runs: Styled runs in reading order.
			frame: Text frame in the current coordinate system.
			align: Paragraph alignment.
		"""
		lines = layout_text_runs(runs, frame.width)
		y = frame.y
		for index, line in enumerate(lines):
			spaces = [fragment for fragment in line.fragments if fragment.is_space]
			extra = 0.0
			is_last = index == len(lines) - 1
			if align == "justify" and spaces and not line.hard_break and not is_last:
				extra = max(0.0, frame.width - line.width) / len(spaces)
			x = frame.x + compute_align_offset(frame.width, line.width, align)
			baseline = y + line.ascent
			for fragment in line.fragments:
				width = fragment.width + (extra if fragment.is_space else 0.0)
				run = fragment.run
				if run.background is not None:
					ascent, descent = run_metrics(run)
					self.fill_rect(Frame(x, baseline - ascent, width, ascent + descent), run.background)
				if run.icon is not None:
					self.draw_image(run.icon, Frame(x, baseline - run.size, width, run.size))
				elif not fragment.is_space and not run.color.is_transparent:
					self.draw_string(fragment.text, x, baseline, run)
				x += width
			y += line.height
