class LLMError(Exception):
    """LLM provider failed (non-2xx, network error or unreadable body)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TransportError(Exception):
    """WhatsApp transport refused or failed to deliver a message."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ToolArgumentError(Exception):
    """Tool call arguments from the model failed validation."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"Invalid arguments for {tool_name}: {message}")
