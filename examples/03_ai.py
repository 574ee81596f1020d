"""
Example 03: AI Evaluation

This example demonstrates is_() and do() with a stand-in AI client. Any
object with an async ``complete(prompt, *, tools=None, **options)`` method
can be passed as the ``ai`` option.
"""

import asyncio
import json

from row_object import PersistentObject, entity, text


class EchoClient:
    """Answers every evaluation with true and every instruction with a summary."""

    async def complete(self, prompt, *, tools=None, **options):
        if options.get("response_format"):
            return json.dumps({"result": True})
        record = json.loads(prompt.split("\n", 1)[0])
        names = [t["function"]["name"] for t in tools or []]
        return f"'{record['title']}' can call {names}"


@entity(ai={"callable": ["publish"]})
class Article(PersistentObject):
    title = text()
    body = text()

    async def publish(self, channel: str) -> str:
        """Publish the article to a channel."""
        return channel


async def main():
    options = {"persistence": {"type": "memory"}, "ai": EchoClient()}
    article = Article(options, title="Hello", body="A short post.")

    print("=== AI Evaluation ===\n")
    print(f"1. is_(): {await article.is_('Is the article short?')}")
    print(f"2. do():  {await article.do('Summarize the article')}")


if __name__ == "__main__":
    asyncio.run(main())
