from typing import Protocol


class ModerationClient(Protocol):
    async def check(self, texts: list[str], images_base64: list[str]) -> list[list[str]]:
        """Return the flagged categories for each text, then each image, in input order."""
        ...


class AllowAllModeration:
    """Used when no moderation provider is configured; nothing is ever flagged."""

    async def check(self, texts: list[str], images_base64: list[str]) -> list[list[str]]:
        return [[] for _ in [*texts, *images_base64]]


def flagged_categories(results: list[list[str]]) -> list[str]:
    categories: list[str] = []
    for item in results:
        for category in item:
            if category not in categories:
                categories.append(category)
    return categories
