"""
Client for Apple's verifyReceipt endpoint.
"""
import logfire
import httpx
from typing import Optional

from server.core.config.apple_receipt_config import AppleReceiptConfig
from server.core.models.receipt_models import VerificationRequest, VerificationResponse
from server.core.service.receipt_verification.deadline import Deadline
from server.core.service.receipt_verification.exceptions import (
    DeadlineExceededError,
    TransportError,
)


class AppleVerifierClient:
    """
    Sends receipts to Apple for verification.

    Receipts always go to the sandbox endpoint first, production builds included.
    A 21007 status is answered with exactly one retry against the retry
    environment (sandbox unless configured otherwise). Transport failures are
    never retried.
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        retry_environment: str = "sandbox"
    ):
        self._http_client = http_client
        self._retry_url = AppleReceiptConfig.retry_url(retry_environment)

    def verify(
        self,
        receipt_data: str,
        shared_secret: str,
        timeout: Optional[float] = None
    ) -> VerificationResponse:
        """
        Verify a receipt with Apple.

        Args:
            receipt_data: Base64 encoded receipt
            shared_secret: App shared secret
            timeout: Seconds available for all attempts together, None for no limit

        Returns:
            The parsed response of the last attempt

        Raises:
            TransportError: If Apple could not be reached or the reply was not JSON
        """
        deadline = Deadline(timeout)
        request = VerificationRequest(receipt_data=receipt_data, password=shared_secret)

        response = self._post(AppleReceiptConfig.SANDBOX_URL, request, deadline)

        if response.status == AppleReceiptConfig.STATUS_SANDBOX_RECEIPT:
            logfire.info(
                "Receipt sent to wrong environment, retrying once",
                extra={"status": response.status, "retry_url": self._retry_url}
            )
            response = self._post(self._retry_url, request, deadline)

        return response

    def _post(self, url: str, request: VerificationRequest, deadline: Deadline) -> VerificationResponse:
        remaining = deadline.remaining()
        timeout = httpx.USE_CLIENT_DEFAULT if remaining is None else remaining

        try:
            if self._http_client is not None:
                http_response = self._http_client.post(url, json=request.to_payload(), timeout=timeout)
            else:
                with httpx.Client() as client:
                    http_response = client.post(url, json=request.to_payload(), timeout=timeout)

            logfire.debug(
                f"verifyReceipt HTTP status: {http_response.status_code}",
                extra={"url": url, "status_code": http_response.status_code}
            )
            http_response.raise_for_status()
            data = http_response.json()
        except httpx.TimeoutException as e:
            raise DeadlineExceededError(f"Timeout calling {url}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(f"verifyReceipt returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Error communicating with {url}: {str(e)}") from e
        except ValueError as e:
            raise TransportError(f"verifyReceipt returned a non-JSON body: {str(e)}") from e

        response = VerificationResponse.from_apple(data)
        logfire.info(
            f"verifyReceipt status: {response.status}",
            extra={
                "status": response.status,
                "environment": response.environment,
                "records": len(response.purchase_records)
            }
        )
        return response
