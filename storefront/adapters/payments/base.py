from abc import ABC, abstractmethod

from storefront.schemas.payments import PaymentNotification, PreferenceRequest, PreferenceResponse


class AbstractPaymentGateway(ABC):
	"""Interface for payment provider clients."""

	@abstractmethod
	async def get_payment(self, payment_id: str) -> PaymentNotification | None:
		"""Fetch the current state of a payment.

		Args:
			payment_id: Provider payment id taken from the webhook ``data.id``.

		Returns:
			PaymentNotification, or None when the provider does not know the id.

		Raises:
			PaymentGatewayAppError: If the provider call fails.
		"""
		...

	@abstractmethod
	async def create_preference(self, request: PreferenceRequest) -> PreferenceResponse:
		"""Create a checkout preference for an order.

		Raises:
			PaymentGatewayAppError: If the provider call fails.
		"""
		...

	async def close(self) -> None:
		"""Release client resources."""
