from __future__ import annotations


class LibmediumError(Exception):
    """Base class for failures that terminate a proxied request."""

    status_code = 500
    public_message = "Something went wrong while rendering this page."


class PostNotFoundError(LibmediumError):
    status_code = 404
    public_message = "Post not found."

    def __init__(self, post_id: str) -> None:
        super().__init__(f"post not found upstream post_id={post_id}")
        self.post_id = post_id


class UpstreamTransportError(LibmediumError):
    status_code = 502
    public_message = "The upstream service could not be reached. Please try again later."

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class MissingRequiredFieldError(LibmediumError):
    status_code = 502
    public_message = "The upstream post is missing data required to render it."

    def __init__(self, field_name: str, *, post_id: str) -> None:
        super().__init__(f"required field missing field={field_name} post_id={post_id}")
        self.field_name = field_name
        self.post_id = post_id


class InvalidPostPathError(LibmediumError):
    status_code = 400
    public_message = "This URL does not contain a post id."

    def __init__(self, segment: str) -> None:
        super().__init__(f"no usable post id in path segment={segment!r}")
        self.segment = segment


class MalformedMarkupError(ValueError):
    """Raised for a single inconsistent markup range; always recovered locally."""
