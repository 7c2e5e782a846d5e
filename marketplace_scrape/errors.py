from typing import Optional


class ScrapeError(Exception):
    """Base class for recoverable pipeline failures."""


class TransientNetworkError(ScrapeError):
    pass


class ExternalServiceUnavailable(ScrapeError):
    pass


class ValidationFailure(ScrapeError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AntiBotBlock(ScrapeError):
    def __init__(self, marketplace: Optional[str] = None, detail: str = "anti-bot challenge"):
        super().__init__(detail)
        self.marketplace = marketplace
        self.detail = detail

    def user_message(self) -> str:
        where = self.marketplace or "the marketplace"
        return (
            f"Captcha detected on {where}. "
            "Open the link in a browser, solve the challenge and try again."
        )


class NotFound(ScrapeError):
    message = "Could not extract product data"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)


UNSUPPORTED_MARKETPLACE = "Marketplace not supported"
