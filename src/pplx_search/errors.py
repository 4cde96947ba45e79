SETTINGS_URL = "https://www.perplexity.ai/settings/api"


class PplxError(Exception):
    """Base class for errors that end the current command."""

    exit_code = 1
    remediation = ""

    def __init__(self, message: str = "", remediation: str | None = None):
        super().__init__(message or self.__doc__)
        if remediation is not None:
            self.remediation = remediation


class MissingCredential(PplxError):
    """No API key configured. Run 'pplx configure' first."""


class EmptyCredential(PplxError):
    """API key is empty. Run 'pplx configure' to set a valid key."""


class AuthenticationFailed(PplxError):
    """Authentication failed (401 Authorization Required)"""

    remediation = (
        "Your API key appears to be invalid or expired. "
        "Please run 'pplx configure' to update it.\n"
        f"Visit {SETTINGS_URL} to manage your API keys"
    )


class EmptyResponse(PplxError):
    """Empty response from API. Please check your internet connection."""


class ApiError(PplxError):
    """Error from Perplexity API"""

    def __init__(self, body: str):
        super().__init__(f"Perplexity API returned an error:\n{body}")
        self.body = body


class UnexpectedHtml(PplxError):
    """Received HTML response instead of JSON"""

    remediation = (
        "This usually means there was an authentication error or API endpoint issue.\n"
        "Try running 'pplx verify' to check if your API key is valid."
    )

    def __init__(self, preview: str):
        super().__init__(f"Received HTML response instead of JSON\n\nResponse preview:\n{preview}")
        self.preview = preview


class UnexpectedResponse(PplxError):
    """The API answered without a 'choices' field."""

    def __init__(self, body: str):
        super().__init__(f"Unexpected response from API:\n{body}")
        self.body = body


class MalformedJson(PplxError):
    """Invalid JSON response from API."""


class UnknownFormat(PplxError):
    """Unknown export format."""

    def __init__(self, fmt: str):
        super().__init__(f"Invalid format '{fmt}'. Use md, txt, or pdf.")
        self.format = fmt


class UnknownCommand(PplxError):
    """Unknown command."""

    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name}")
        self.name = name


class MissingQuery(PplxError):
    """No search query provided."""


class ConversionFailed(PplxError):
    """A PDF converter ran but did not produce a document."""


class NoPdfConverter(PplxError):
    """Cannot convert to PDF. Please install pandoc, wkhtmltopdf, or enscript+ps2pdf."""
