"""
Inference oracle port.

The vision model is an opaque external collaborator: it receives a
photo reference plus context and returns a parsed response or a typed
OracleError.
"""

from typing import Protocol, runtime_checkable

from mealsight.domain.recognition.models import OracleRequest, OracleResponse


@runtime_checkable
class IInferenceOracle(Protocol):
    """
    Port for food recognition from photos.

    Example:
        >>> oracle = InferenceOracleClient(api_key="sk-...")
        >>> response = await oracle.analyze(OracleRequest(image_url="https://..."))
    """

    async def analyze(self, request: OracleRequest) -> OracleResponse:
        """
        Analyze a meal photo.

        Raises:
            OracleTransientError: Retryable infrastructure failure
            OracleMalformedOutputError: Unusable model output
            OracleRequestError: Terminal failure
        """
        ...
