"""
Email Tool - Gmail search, read and send.
"""

import base64
from email.mime.text import MIMEText
from typing import Any

from bs4 import BeautifulSoup

from ..cancellation import CancellationToken
from .base import Tool, ToolParameter
from .google_services import GMAIL_SCOPES, GoogleServiceCache


def _decode_body(data: str) -> str:
    return base64.urlsafe_b64decode(data.encode() + b"===").decode("utf-8", errors="replace")


def extract_body(payload: dict[str, Any]) -> str:
    """Extract a readable body from a Gmail message payload.

    Prefers text/plain; falls back to text/html converted to text.
    """
    plain: list[str] = []
    html: list[str] = []

    def walk(part: dict[str, Any]) -> None:
        mime = part.get("mimeType", "")
        data = part.get("body", {}).get("data")
        if data and mime == "text/plain":
            plain.append(_decode_body(data))
        elif data and mime == "text/html":
            html.append(_decode_body(data))
        for sub in part.get("parts", []) or []:
            walk(sub)

    walk(payload)

    if plain:
        return "\n".join(plain).strip()
    if html:
        return BeautifulSoup("\n".join(html), "html.parser").get_text("\n", strip=True)
    return ""


def _headers(message: dict[str, Any]) -> dict[str, str]:
    return {h["name"]: h["value"] for h in message.get("payload", {}).get("headers", [])}


def create_gmail_tools(google: GoogleServiceCache) -> list[Tool]:
    """Create Gmail tools bound to a shared service cache."""

    async def call(request, cancellation):
        return await google.call("gmail", "v1", GMAIL_SCOPES, request, cancellation)

    async def gmail_search_handler(
        query: str,
        max_results: int = 10,
        cancellation: CancellationToken | None = None,
    ) -> str:
        def run(gmail) -> list[dict[str, Any]]:
            listing = gmail.users().messages().list(
                userId="me", q=query, maxResults=max_results,
            ).execute()
            found = []
            for msg in listing.get("messages", []):
                found.append(gmail.users().messages().get(
                    userId="me",
                    id=msg["id"],
                    format="metadata",
                    metadataHeaders=["From", "Subject", "Date"],
                ).execute())
            return found

        messages = await call(run, cancellation)
        if not messages:
            return f"No emails found for query: {query}"

        lines = []
        for msg in messages:
            headers = _headers(msg)
            lines.append(
                f"ID: {msg['id']}\n"
                f"  Date: {headers.get('Date', '')}\n"
                f"  From: {headers.get('From', '')}\n"
                f"  Subject: {headers.get('Subject', '(No Subject)')}\n"
                f"  Snippet: {msg.get('snippet', '')}"
            )
        return "\n\n".join(lines)

    async def gmail_read_handler(
        message_id: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        msg = await call(
            lambda gmail: gmail.users().messages().get(
                userId="me", id=message_id, format="full",
            ).execute(),
            cancellation,
        )
        headers = _headers(msg)
        body = extract_body(msg.get("payload", {})) or "(no body)"
        return (
            f"From: {headers.get('From', '')}\n"
            f"To: {headers.get('To', '')}\n"
            f"Date: {headers.get('Date', '')}\n"
            f"Subject: {headers.get('Subject', '(No Subject)')}\n\n"
            f"{body}"
        )

    async def gmail_send_handler(
        to: str,
        subject: str,
        body: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        message = MIMEText(body)
        message["to"] = to
        message["subject"] = subject
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()

        result = await call(
            lambda gmail: gmail.users().messages().send(userId="me", body={"raw": raw}).execute(),
            cancellation,
        )
        return f"Email sent successfully to {to}. Message ID: {result.get('id', 'unknown')}"

    gmail_search = Tool(
        tool_name="gmail_search",
        tool_description=(
            "Search Gmail using Gmail search syntax (e.g. 'is:unread', "
            "'from:boss@example.com newer_than:7d'). Returns message IDs, senders, "
            "subjects and snippets."
        ),
        parameters=[
            ToolParameter(
                name="query",
                param_type="string",
                description="Gmail search query",
            ),
            ToolParameter(
                name="max_results",
                param_type="integer",
                description="Maximum number of messages to return (default: 10)",
                required=False,
            ),
        ],
        handler=gmail_search_handler,
        accepts_cancellation=True,
    )

    gmail_read = Tool(
        tool_name="gmail_read",
        tool_description="Read the full content of a Gmail message by its ID.",
        parameters=[
            ToolParameter(
                name="message_id",
                param_type="string",
                description="The Gmail message ID (from gmail_search)",
            ),
        ],
        handler=gmail_read_handler,
        accepts_cancellation=True,
    )

    gmail_send = Tool(
        tool_name="gmail_send",
        tool_description="Send a plain-text email via Gmail.",
        parameters=[
            ToolParameter(name="to", param_type="string", description="Recipient email address"),
            ToolParameter(name="subject", param_type="string", description="Email subject line"),
            ToolParameter(name="body", param_type="string", description="Email body content"),
        ],
        handler=gmail_send_handler,
        accepts_cancellation=True,
    )

    return [gmail_search, gmail_read, gmail_send]
