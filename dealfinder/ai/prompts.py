"""Centralized prompt templates for LLM interactions."""

from pydantic import BaseModel

RELEVANCE_SYSTEM_PROMPT = (
    "You are a highly analytical shopping relevance evaluator. "
    "You judge whether product listings are direct matches for a shopper's search."
)


class RelevanceFilterPrompt(BaseModel):
    """Prompt schema for filtering listings by search intent."""

    query: str
    titles: list[str]

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        items = "\n".join(f"{i}: {title}" for i, title in enumerate(self.titles))
        return (
            f'The user\'s EXACT search intent is: "{self.query}"\n\n'
            "Here is a list of product results received from multiple stores:\n"
            f"{items}\n\n"
            "TASK:\n"
            "Determine which items are a direct match for the user's intent.\n\n"
            "STRICT FILTERING RULES:\n"
            "1. NO ACCESSORIES: If the user searches for a main device (e.g., iPhone, AirPods, "
            "PlayStation) and the result is an accessory (case, cover, screen guard, charger, "
            "cable, strap, etc.), it is NOT RELEVANT.\n"
            '2. VERSION MATCHING: If the user specified a version (e.g., "iPhone 15"), results '
            'for earlier versions (e.g., "iPhone 11") are NOT RELEVANT.\n'
            '3. ITEM TYPE: Different item types (e.g., "iPhone 15" results in "MacBook" or '
            '"Apple Watch") are NOT RELEVANT.\n\n'
            "OUTPUT:\n"
            "Return ONLY a JSON array of indices for items that are HIGHLY RELEVANT and DIRECT MATCHES, "
            "in order of relevance.\n"
            "Example: [0, 1, 4]"
        )


SHOPPING_CATEGORIES = ("gadget", "fashion", "food", "decor", "beauty", "auto", "other")

CATEGORY_SYSTEM_PROMPT = "You classify shopping queries into product categories."


class CategoryDetectionPrompt(BaseModel):
    """Prompt schema for classifying a shopping query."""

    query: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        return (
            "Classify this shopping query into exactly one of these categories: "
            f"{', '.join(SHOPPING_CATEGORIES)}.\n"
            f'Query: "{self.query}"\n\n'
            "Return ONLY the category name. No other text."
        )


RECOMMENDATION_SYSTEM_PROMPT = (
    "You are a friendly shopping assistant. You pick the single best deal from a ranked list "
    "and explain the choice briefly."
)

RECOMMENDATION_SCHEMA = {
    "type": "object",
    "properties": {
        "choice": {"type": "integer", "description": "1-based number of the recommended deal"},
        "reason": {"type": "string"},
    },
    "required": ["choice", "reason"],
}


class RecommendationPrompt(BaseModel):
    """Prompt schema for choosing the best deal of a search."""

    query: str
    deals: list[str]  # one pre-formatted line per deal

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        items = "\n".join(f"{i}. {line}" for i, line in enumerate(self.deals, start=1))
        return (
            f'Based on these search results for "{self.query}", recommend THE BEST SINGLE OPTION '
            "and explain why.\n\n"
            f"{items}\n\n"
            "Consider value for money (not just the cheapest), ratings, reviews and store reliability. "
            "Keep the reason short and conversational."
        )
