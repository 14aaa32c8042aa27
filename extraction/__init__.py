from .gateway import ExtractionGateway  # noqa: F401
from .llm_client import TextGenerator, UnconfiguredGenerator, build_generator  # noqa: F401
from .usage import estimate_tokens  # noqa: F401
