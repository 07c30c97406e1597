"""Chat side effects of booking lifecycle events."""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from jinja2 import DictLoader, Environment, StrictUndefined

from booking_service.config import settings
from booking_service.domain.events import (
    BookingApproved,
    BookingCancelled,
    BookingDeclined,
    BookingEvent,
    BookingRequested,
)
from booking_service.domain.models import ChatMessage, ChatThread, Rental
from booking_service.domain.pricing import owner_earnings, to_money
from booking_service.infrastructure.clients import UserClient
from booking_service.infrastructure.repositories import ChatRepository

logger = logging.getLogger(__name__)

DEFAULT_RENTER_NAME = "A renter"
DEFAULT_OWNER_NAME = "the owner"

MESSAGE_TEMPLATES: Dict[str, str] = {
    "request_owner": (
        "Action Required: New Rental Request for {{ tool_name }}!\n\n"
        "{{ renter_name }} has requested to rent your tool from "
        "{{ start_date | format_date }} to {{ end_date | format_date }}.\n\n"
        "Total Price: {{ total_paid | currency }}\n"
        "Your Potential Earnings: {{ earnings | currency }}\n\n"
        "Please accept or decline this request within {{ ttl_hours }} hours."
    ),
    "request_renter": (
        "Request Sent!\n\n"
        "We have sent your request for the {{ tool_name }} to {{ owner_name }}.\n\n"
        "Your card will only be charged once the owner accepts the booking. "
        "We will notify you as soon as they respond!"
    ),
    "approved": (
        "Booking Approved!\n\n"
        "{{ owner_name | capitalize_first }} approved your rental of the {{ tool_name }} from "
        "{{ start_date | format_date }} to {{ end_date | format_date }}.\n\n"
        "Total: {{ total_paid | currency }}"
    ),
    "declined": (
        "Request Declined\n\n"
        "{% if reason == 'expired' %}"
        "Your request for the {{ tool_name }} expired before the owner responded."
        "{% elif reason == 'conflict' %}"
        "The {{ tool_name }} was booked by someone else for "
        "{{ start_date | format_date }} to {{ end_date | format_date }}."
        "{% else %}"
        "{{ owner_name | capitalize_first }} declined your request for the {{ tool_name }}."
        "{% if reason %}\n\nReason: {{ reason }}{% endif %}"
        "{% endif %}\n\n"
        "You have not been charged."
    ),
    "cancelled": (
        "Booking Cancelled\n\n"
        "{{ renter_name }} cancelled the rental of your {{ tool_name }} from "
        "{{ start_date | format_date }} to {{ end_date | format_date }}. "
        "These dates are available again."
    ),
}


def _currency(value: Any) -> str:
    return f"${to_money(value):,.2f}"


def _format_date(value: Any) -> str:
    if isinstance(value, date):
        return f"{value:%b} {value.day}, {value.year}"
    return str(value)


def _capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def build_environment() -> Environment:
    """Jinja2 environment holding the chat message templates."""
    env = Environment(
        loader=DictLoader(MESSAGE_TEMPLATES),
        autoescape=False,
        undefined=StrictUndefined,
    )
    env.filters["currency"] = _currency
    env.filters["format_date"] = _format_date
    env.filters["capitalize_first"] = _capitalize_first
    return env


class MessagingService:
    """Posts templated system messages to the owner/renter chat of a listing."""

    def __init__(
        self,
        chat_repository: ChatRepository,
        user_client: Optional[UserClient] = None,
        seller_fee_percent: Decimal = settings.seller_fee_percent,
        pending_request_ttl_hours: int = settings.pending_request_ttl_hours,
    ):
        self.chat_repository = chat_repository
        self.user_client = user_client
        self.seller_fee_percent = seller_fee_percent
        self.pending_request_ttl_hours = pending_request_ttl_hours
        self.env = build_environment()

    def render(self, template_name: str, **context: Any) -> str:
        return self.env.get_template(template_name).render(**context)

    async def _display_name(self, user_id: UUID, fallback: str) -> str:
        if self.user_client is None:
            return fallback
        name = await self.user_client.get_display_name(user_id)
        return name or fallback

    async def _thread_for(self, rental: Rental) -> ChatThread:
        return await self.chat_repository.get_or_create_thread(
            listing_id=rental.listing_id,
            owner_id=rental.owner_id,
            renter_id=rental.renter_id,
        )

    async def _post(
        self,
        thread: ChatThread,
        sender_id: UUID,
        recipient_id: UUID,
        content: str,
        message_type: str = "system",
    ) -> ChatMessage:
        message = ChatMessage(
            chat_id=thread.chat_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            message_type=message_type,
        )
        return await self.chat_repository.add_message(message)

    @staticmethod
    def _rental_context(rental: Rental, tool_name: str) -> Dict[str, Any]:
        return {
            "tool_name": tool_name,
            "start_date": rental.start_date,
            "end_date": rental.end_date,
            "total_paid": rental.total_paid,
        }

    async def handle(self, event: BookingEvent) -> List[ChatMessage]:
        """Dispatch an event to its handler; returns the posted messages."""
        if isinstance(event, BookingRequested):
            return await self.on_booking_requested(event)
        if isinstance(event, BookingApproved):
            return await self.on_booking_approved(event)
        if isinstance(event, BookingDeclined):
            return await self.on_booking_declined(event)
        if isinstance(event, BookingCancelled):
            return await self.on_booking_cancelled(event)
        logger.warning(f"No message handler for event {event.event_type}")
        return []

    async def on_booking_requested(self, event: BookingRequested) -> List[ChatMessage]:
        """Owner gets the request details, renter gets a submission confirmation."""
        rental = event.rental
        thread = await self._thread_for(rental)

        renter_name = await self._display_name(rental.renter_id, DEFAULT_RENTER_NAME)
        owner_name = await self._display_name(rental.owner_id, DEFAULT_OWNER_NAME)
        context = self._rental_context(rental, event.listing.title)

        owner_text = self.render(
            "request_owner",
            renter_name=renter_name,
            earnings=owner_earnings(rental.total_paid, self.seller_fee_percent),
            ttl_hours=self.pending_request_ttl_hours,
            **context,
        )
        renter_text = self.render("request_renter", owner_name=owner_name, **context)

        messages = [
            await self._post(thread, rental.owner_id, rental.owner_id, owner_text),
            await self._post(thread, rental.owner_id, rental.renter_id, renter_text),
        ]

        note = (event.message or "").strip()
        if note:
            # One copy per participant so each side sees it in their view.
            for recipient_id in (rental.owner_id, rental.renter_id):
                messages.append(
                    await self._post(thread, rental.renter_id, recipient_id, note, "text")
                )

        logger.info(
            f"Posted {len(messages)} messages to chat {thread.chat_id} "
            f"for rental {rental.rental_id}"
        )
        return messages

    async def on_booking_approved(self, event: BookingApproved) -> List[ChatMessage]:
        rental = event.rental
        thread = await self._thread_for(rental)
        owner_name = await self._display_name(rental.owner_id, DEFAULT_OWNER_NAME)
        text = self.render(
            "approved",
            owner_name=owner_name,
            **self._rental_context(rental, event.listing.title),
        )
        return [await self._post(thread, rental.owner_id, rental.renter_id, text)]

    async def on_booking_declined(self, event: BookingDeclined) -> List[ChatMessage]:
        rental = event.rental
        thread = await self._thread_for(rental)
        owner_name = await self._display_name(rental.owner_id, DEFAULT_OWNER_NAME)
        text = self.render(
            "declined",
            owner_name=owner_name,
            reason=event.reason,
            **self._rental_context(rental, event.listing.title),
        )
        return [await self._post(thread, rental.owner_id, rental.renter_id, text)]

    async def on_booking_cancelled(self, event: BookingCancelled) -> List[ChatMessage]:
        rental = event.rental
        thread = await self._thread_for(rental)
        renter_name = await self._display_name(rental.renter_id, DEFAULT_RENTER_NAME)
        text = self.render(
            "cancelled",
            renter_name=renter_name,
            **self._rental_context(rental, event.listing.title),
        )
        return [await self._post(thread, rental.renter_id, rental.owner_id, text)]
