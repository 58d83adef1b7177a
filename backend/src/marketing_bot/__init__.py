"""WhatsApp marketing chatbot with multi-provider model rotation."""

__version__ = "0.1.0"
