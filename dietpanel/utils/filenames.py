import unicodedata

MAX_FILENAME_LENGTH = 255
DEFAULT_PDF_FILENAME = "material.pdf"


def sanitize_filename(name: str | None, fallback: str = DEFAULT_PDF_FILENAME) -> str:
    """
    Make a filename safe for a quoted ``Content-Disposition`` parameter.

    Path separators become "-", quotes and control/non-printable characters
    are dropped, and the result is clamped to 255 characters.
    """
    if not name:
        return fallback
    cleaned = name.replace("/", "-").replace("\\", "-")
    cleaned = "".join(
        ch
        for ch in cleaned
        if ch not in {'"', "'"} and unicodedata.category(ch)[0] != "C"
    )
    cleaned = cleaned.strip()
    if not cleaned:
        return fallback
    return cleaned[:MAX_FILENAME_LENGTH]


def content_disposition(name: str | None) -> str:
    return f'attachment; filename="{sanitize_filename(name)}"'
