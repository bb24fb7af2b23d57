from __future__ import annotations

from langchain_core.prompts import ChatPromptTemplate

SUGGESTION_SHAPE = "\n".join(
    [
        "type GiftSuggestion = {",
        "  id: string;",
        "  title: string;",
        "  short_description: string;",
        '  tier: "safe" | "thoughtful" | "experience" | "splurge";',
        "  price_min?: number | null;",
        "  price_max?: number | null;",
        "  price_hint?: string | null;",
        "  why_it_fits: string;",
        "  suggested_url?: string | null;",
        "  image_url?: string | null;",
        "};",
    ]
)


def build_suggestion_prompt() -> ChatPromptTemplate:
    """Return ChatPromptTemplate asking the model for a JSON batch of gift ideas."""

    escaped_shape = SUGGESTION_SHAPE.replace("{", "{{").replace("}", "}}")

    system_message = (
        "You are a gifting assistant inside a gift-planning app. "
        "You generate concrete gift ideas tailored to the recipient's profile, interests, "
        "budget and gift history. "
        "Return exactly num_suggestions ideas, each a specific product or experience with a real title. "
        "Never return any idea whose title matches an entry of disallowed_titles, "
        "including plural, casing or punctuation variants. "
        "Keep prices inside the budget when one is given.\n\n"
        "Respond ONLY as JSON using this structure:\n"
        f"{escaped_shape}\n\n"
        "Return an object: {{ \"suggestions\": GiftSuggestion[] }}. "
        "Do not include code fences or any text outside JSON."
    )

    return ChatPromptTemplate.from_messages(
        [
            ("system", system_message),
            ("user", "{payload_json}"),
        ]
    )
