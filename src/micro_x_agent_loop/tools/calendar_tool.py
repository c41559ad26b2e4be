"""
Calendar Tool - Google Calendar listing, lookup and event creation.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from ..cancellation import CancellationToken
from .base import Tool, ToolParameter
from .google_services import CALENDAR_SCOPES, GoogleServiceCache


def format_event(event: dict[str, Any]) -> str:
    """Render a Calendar API event as a short text block."""
    start = event.get("start", {})
    end = event.get("end", {})
    when = start.get("dateTime") or start.get("date", "")
    until = end.get("dateTime") or end.get("date", "")

    lines = [
        f"ID: {event.get('id', '')}",
        f"  Summary: {event.get('summary', '(No title)')}",
        f"  When: {when} -> {until}",
    ]
    if event.get("location"):
        lines.append(f"  Location: {event['location']}")
    attendees = [a.get("email", "") for a in event.get("attendees", [])]
    if attendees:
        lines.append(f"  Attendees: {', '.join(attendees)}")
    return "\n".join(lines)


def format_event_detail(event: dict[str, Any]) -> str:
    """Render every field of an event that the model may need."""
    start = event.get("start", {})
    end = event.get("end", {})

    lines = [
        f"Summary: {event.get('summary', '(No title)')}",
        f"Status: {event.get('status', '')}",
        f"Start: {start.get('dateTime') or start.get('date', '')}",
        f"End: {end.get('dateTime') or end.get('date', '')}",
        f"Location: {event.get('location', '')}",
        f"Description: {event.get('description', '')}",
        f"Organizer: {event.get('organizer', {}).get('email', '')}",
        f"Creator: {event.get('creator', {}).get('email', '')}",
    ]

    attendees = event.get("attendees", [])
    if attendees:
        lines.append("Attendees:")
        for a in attendees:
            lines.append(f"    {a.get('email', '')} ({a.get('responseStatus', '')})")

    for entry in event.get("conferenceData", {}).get("entryPoints", []):
        if entry.get("entryPointType") == "video":
            lines.append(f"Conference Link: {entry.get('uri', '')}")
            break

    if event.get("recurrence"):
        lines.append(f"Recurrence: {'; '.join(event['recurrence'])}")

    return "\n".join(lines)


def create_calendar_tools(google: GoogleServiceCache) -> list[Tool]:
    """Create Calendar tools bound to a shared service cache."""

    async def call(request, cancellation):
        return await google.call("calendar", "v3", CALENDAR_SCOPES, request, cancellation)

    async def list_events_handler(
        days: int = 7,
        max_results: int = 20,
        cancellation: CancellationToken | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)

        result = await call(
            lambda calendar: calendar.events().list(
                calendarId="primary",
                timeMin=now.isoformat(),
                timeMax=(now + timedelta(days=days)).isoformat(),
                maxResults=max_results,
                singleEvents=True,
                orderBy="startTime",
            ).execute(),
            cancellation,
        )

        events = result.get("items", [])
        if not events:
            return f"No events in the next {days} day(s)."
        return "\n\n".join(format_event(e) for e in events)

    async def get_event_handler(
        event_id: str,
        calendar_id: str = "primary",
        cancellation: CancellationToken | None = None,
    ) -> str:
        event = await call(
            lambda calendar: calendar.events().get(calendarId=calendar_id, eventId=event_id).execute(),
            cancellation,
        )
        return format_event_detail(event)

    async def create_event_handler(
        summary: str,
        start: str,
        end: str,
        description: str = "",
        location: str = "",
        attendees: list[str] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> str:
        body: dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start},
            "end": {"dateTime": end},
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if attendees:
            body["attendees"] = [{"email": a} for a in attendees]

        event = await call(
            lambda calendar: calendar.events().insert(calendarId="primary", body=body).execute(),
            cancellation,
        )
        return f"Event created.\n{format_event(event)}\nLink: {event.get('htmlLink', '')}"

    list_events = Tool(
        tool_name="calendar_list_events",
        tool_description="List upcoming events from the primary Google Calendar.",
        parameters=[
            ToolParameter(
                name="days",
                param_type="integer",
                description="How many days ahead to look (default: 7)",
                required=False,
            ),
            ToolParameter(
                name="max_results",
                param_type="integer",
                description="Maximum number of events (default: 20)",
                required=False,
            ),
        ],
        handler=list_events_handler,
        accepts_cancellation=True,
    )

    get_event = Tool(
        tool_name="calendar_get_event",
        tool_description="Get full details of a Google Calendar event by its event ID.",
        parameters=[
            ToolParameter(
                name="event_id",
                param_type="string",
                description="The event ID (from calendar_list_events results)",
            ),
            ToolParameter(
                name="calendar_id",
                param_type="string",
                description="Calendar ID (default: primary)",
                required=False,
            ),
        ],
        handler=get_event_handler,
        accepts_cancellation=True,
    )

    create_event = Tool(
        tool_name="calendar_create_event",
        tool_description="Create an event on the primary Google Calendar.",
        parameters=[
            ToolParameter(name="summary", param_type="string", description="Event title"),
            ToolParameter(
                name="start",
                param_type="string",
                description="Start time, RFC 3339 (e.g. 2025-03-01T10:00:00-05:00)",
            ),
            ToolParameter(name="end", param_type="string", description="End time, RFC 3339"),
            ToolParameter(
                name="description",
                param_type="string",
                description="Event description",
                required=False,
            ),
            ToolParameter(
                name="location",
                param_type="string",
                description="Event location",
                required=False,
            ),
            ToolParameter(
                name="attendees",
                param_type="array",
                description="Attendee email addresses",
                required=False,
            ),
        ],
        handler=create_event_handler,
        accepts_cancellation=True,
    )

    return [list_events, get_event, create_event]
