"""
Contacts Tool - Google Contacts (People API) search, read and edit.
"""

from typing import Any

from ..cancellation import CancellationToken
from .base import Tool, ToolParameter
from .google_services import CONTACTS_SCOPES, GoogleServiceCache

SUMMARY_FIELDS = "names,emailAddresses,phoneNumbers"
DETAIL_FIELDS = "names,emailAddresses,phoneNumbers,addresses,organizations,biographies"

MAX_SEARCH_RESULTS = 30
MAX_LIST_RESULTS = 100

SORT_ORDERS = [
    "LAST_MODIFIED_ASCENDING",
    "LAST_MODIFIED_DESCENDING",
    "FIRST_NAME_ASCENDING",
    "LAST_NAME_ASCENDING",
]


def _display_name(person: dict[str, Any]) -> str:
    names = person.get("names") or []
    return names[0].get("displayName", "(no name)") if names else "(no name)"


def format_contact_summary(person: dict[str, Any]) -> str:
    """One contact as resource name, name, first email and first phone."""
    lines = [
        f"ResourceName: {person.get('resourceName', '')}",
        f"  Name: {_display_name(person)}",
    ]
    emails = person.get("emailAddresses") or []
    if emails:
        lines.append(f"  Email: {emails[0].get('value', '')}")
    phones = person.get("phoneNumbers") or []
    if phones:
        lines.append(f"  Phone: {phones[0].get('value', '')}")
    return "\n".join(lines)


def format_contact_detail(person: dict[str, Any]) -> str:
    """Every stored field of a contact, including the etag needed for updates."""
    lines = [
        f"ResourceName: {person.get('resourceName', '')}",
        f"Name: {_display_name(person)}",
        f"Etag: {person.get('etag', '')}",
    ]
    for e in person.get("emailAddresses") or []:
        lines.append(f"Email ({e.get('type', 'other')}): {e.get('value', '')}")
    for p in person.get("phoneNumbers") or []:
        lines.append(f"Phone ({p.get('type', 'other')}): {p.get('value', '')}")
    for a in person.get("addresses") or []:
        lines.append(f"Address ({a.get('type', 'other')}): {a.get('formattedValue', '')}")
    for o in person.get("organizations") or []:
        title = f" ({o['title']})" if o.get("title") else ""
        lines.append(f"Organization: {o.get('name', '')}{title}")
    biographies = person.get("biographies") or []
    if biographies:
        lines.append(f"Biography: {biographies[0].get('value', '')}")
    return "\n".join(lines)


def build_person(
    given_name: str = "",
    family_name: str = "",
    email: str = "",
    email_type: str = "other",
    phone: str = "",
    phone_type: str = "other",
    organization: str = "",
    job_title: str = "",
) -> tuple[dict[str, Any], list[str]]:
    """Build a People API person body. Returns the body and the fields it sets."""
    body: dict[str, Any] = {}
    fields: list[str] = []

    if given_name or family_name:
        name = {}
        if given_name:
            name["givenName"] = given_name
        if family_name:
            name["familyName"] = family_name
        body["names"] = [name]
        fields.append("names")

    if email:
        body["emailAddresses"] = [{"value": email, "type": email_type or "other"}]
        fields.append("emailAddresses")

    if phone:
        body["phoneNumbers"] = [{"value": phone, "type": phone_type or "other"}]
        fields.append("phoneNumbers")

    if organization or job_title:
        org = {}
        if organization:
            org["name"] = organization
        if job_title:
            org["title"] = job_title
        body["organizations"] = [org]
        fields.append("organizations")

    return body, fields


def _field_parameters(name_required: bool) -> list[ToolParameter]:
    return [
        ToolParameter(
            name="given_name",
            param_type="string",
            description="First/given name",
            required=name_required,
        ),
        ToolParameter(name="family_name", param_type="string", description="Last/family name", required=False),
        ToolParameter(name="email", param_type="string", description="Email address", required=False),
        ToolParameter(
            name="email_type",
            param_type="string",
            description="Email type (default: other)",
            required=False,
            enum=["home", "work", "other"],
        ),
        ToolParameter(name="phone", param_type="string", description="Phone number", required=False),
        ToolParameter(
            name="phone_type",
            param_type="string",
            description="Phone type (default: other)",
            required=False,
            enum=["home", "work", "mobile", "other"],
        ),
        ToolParameter(
            name="organization",
            param_type="string",
            description="Company/organization name",
            required=False,
        ),
        ToolParameter(name="job_title", param_type="string", description="Job title", required=False),
    ]


def create_contacts_tools(google: GoogleServiceCache) -> list[Tool]:
    """Create Contacts tools bound to a shared service cache."""

    async def call(request, cancellation):
        return await google.call("people", "v1", CONTACTS_SCOPES, request, cancellation)

    async def search_handler(
        query: str,
        page_size: int = 10,
        cancellation: CancellationToken | None = None,
    ) -> str:
        size = max(1, min(page_size, MAX_SEARCH_RESULTS))
        response = await call(
            lambda people: people.people().searchContacts(
                query=query, readMask=SUMMARY_FIELDS, pageSize=size,
            ).execute(),
            cancellation,
        )
        found = [r["person"] for r in response.get("results", []) if r.get("person")]
        if not found:
            return "No contacts found matching your query."
        return "\n\n".join(format_contact_summary(p) for p in found)

    async def list_handler(
        page_size: int = 10,
        page_token: str = "",
        sort_order: str = "",
        cancellation: CancellationToken | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "resourceName": "people/me",
            "personFields": SUMMARY_FIELDS,
            "pageSize": max(1, min(page_size, MAX_LIST_RESULTS)),
        }
        if page_token:
            params["pageToken"] = page_token
        if sort_order.upper() in SORT_ORDERS:
            params["sortOrder"] = sort_order.upper()

        response = await call(
            lambda people: people.people().connections().list(**params).execute(),
            cancellation,
        )
        connections = response.get("connections", [])
        if not connections:
            return "No contacts found."

        text = "\n\n".join(format_contact_summary(p) for p in connections)
        if response.get("nextPageToken"):
            text += f"\n\n--- More results available. Use page_token: {response['nextPageToken']} ---"
        return text

    async def get_handler(
        resource_name: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        person = await call(
            lambda people: people.people().get(
                resourceName=resource_name, personFields=DETAIL_FIELDS,
            ).execute(),
            cancellation,
        )
        return format_contact_detail(person)

    async def create_handler(
        given_name: str,
        cancellation: CancellationToken | None = None,
        **fields: str,
    ) -> str:
        body, _ = build_person(given_name=given_name, **fields)
        person = await call(
            lambda people: people.people().createContact(body=body).execute(),
            cancellation,
        )
        return "Contact created successfully.\n\n" + format_contact_detail(person)

    async def update_handler(
        resource_name: str,
        etag: str,
        cancellation: CancellationToken | None = None,
        **fields: str,
    ) -> str:
        body, changed = build_person(**fields)
        if not changed:
            return "No fields to update. Provide at least one field to change."
        body["etag"] = etag

        person = await call(
            lambda people: people.people().updateContact(
                resourceName=resource_name,
                updatePersonFields=",".join(changed),
                body=body,
            ).execute(),
            cancellation,
        )
        return "Contact updated successfully.\n\n" + format_contact_detail(person)

    async def delete_handler(
        resource_name: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        await call(
            lambda people: people.people().deleteContact(resourceName=resource_name).execute(),
            cancellation,
        )
        return f"Contact '{resource_name}' deleted successfully."

    resource_param = ToolParameter(
        name="resource_name",
        param_type="string",
        description="The contact's resource name (e.g. 'people/c1234567890')",
    )

    return [
        Tool(
            tool_name="contacts_search",
            tool_description=(
                "Search Google Contacts by name, email, phone number, or other fields. "
                "Returns matching contacts with name, email, and phone number."
            ),
            parameters=[
                ToolParameter(
                    name="query",
                    param_type="string",
                    description="Search query (name, email, phone number, etc.)",
                ),
                ToolParameter(
                    name="page_size",
                    param_type="integer",
                    description="Max number of results (default 10, max 30)",
                    required=False,
                ),
            ],
            handler=search_handler,
            accepts_cancellation=True,
        ),
        Tool(
            tool_name="contacts_list",
            tool_description=(
                "List Google Contacts with name, email, and phone number. "
                "Supports pagination via page_token."
            ),
            parameters=[
                ToolParameter(
                    name="page_size",
                    param_type="integer",
                    description="Number of contacts to return (default 10, max 100)",
                    required=False,
                ),
                ToolParameter(
                    name="page_token",
                    param_type="string",
                    description="Page token from a previous response",
                    required=False,
                ),
                ToolParameter(
                    name="sort_order",
                    param_type="string",
                    description="Sort order",
                    required=False,
                    enum=SORT_ORDERS,
                ),
            ],
            handler=list_handler,
            accepts_cancellation=True,
        ),
        Tool(
            tool_name="contacts_get",
            tool_description=(
                "Get full details of a Google Contact by resource name, including the "
                "etag needed for updates."
            ),
            parameters=[resource_param],
            handler=get_handler,
            accepts_cancellation=True,
        ),
        Tool(
            tool_name="contacts_create",
            tool_description=(
                "Create a new Google Contact. Requires a given name; can also set family "
                "name, email, phone, organization, and job title."
            ),
            parameters=_field_parameters(name_required=True),
            handler=create_handler,
            accepts_cancellation=True,
        ),
        Tool(
            tool_name="contacts_update",
            tool_description=(
                "Update an existing Google Contact. Requires the resource name and etag "
                "(from contacts_get). Provide only the fields you want to change; email "
                "and phone replace the existing values."
            ),
            parameters=[
                resource_param,
                ToolParameter(
                    name="etag",
                    param_type="string",
                    description="The contact's etag (from contacts_get)",
                ),
                *_field_parameters(name_required=False),
            ],
            handler=update_handler,
            accepts_cancellation=True,
        ),
        Tool(
            tool_name="contacts_delete",
            tool_description="Delete a Google Contact by resource name. This cannot be undone.",
            parameters=[resource_param],
            handler=delete_handler,
            accepts_cancellation=True,
        ),
    ]
