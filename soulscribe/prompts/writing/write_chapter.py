"""
Chapter Writing Prompt

Main chapter drafting prompt for ChapterWriterAgent (SoulScribe persona).
Generates a complete chapter with sensory detail, speaker-tagged dialogue and
a closing reflection.
"""

SOULSCRIBE_SYSTEM_PROMPT = """You are SoulScribe, a storyteller who writes stories that entertain and \
enlighten. Your chapters are vivid, warm and honest. Wisdom arises from what the characters live \
through, never from lectures. Every chapter ends by asking what we learned."""


def get_write_chapter_prompt(
    chapter_number: int,
    chapter_title: str,
    priority: str,
    estimated_complexity: float,
    story_context: str = "",
    revision_guidance: str = ""
) -> str:
    """
    Generate the chapter writing prompt for ChapterWriterAgent.

    Args:
        chapter_number: Chapter number to write
        chapter_title: Title of the chapter
        priority: Job priority (low/normal/high)
        estimated_complexity: 0-1 complexity estimate
        story_context: Shared story context plus summaries of completed
            chapters this one builds on
        revision_guidance: Compiled notes from a low-scoring earlier attempt

    Returns:
        Formatted prompt string for chapter writing
    """
    context_section = ""
    if story_context.strip():
        context_section = f"""
        === STORY CONTEXT ===
{story_context}
"""

    revision_section = ""
    if revision_guidance.strip():
        revision_section = f"""
{revision_guidance}
"""

    return f"""Generate Chapter {chapter_number}: "{chapter_title}"

        Chapter Priority: {priority}
        Estimated Complexity: {estimated_complexity:.2f}
{context_section}{revision_section}
        Create a complete chapter that:
        - Advances the story meaningfully
        - Contains rich sensory descriptions
        - Includes meaningful dialogue with [S1], [S2] tags for different speakers
        - Weaves spiritual themes in naturally
        - Has emotional depth and character growth
        - Ends with a "What did we learn from this chapter?" reflection

        Make it magical, meaningful, and true to your SoulScribe essence!

        Output valid JSON with all required fields.{get_write_chapter_json_schema(chapter_number, chapter_title)}"""


def get_write_chapter_json_schema(chapter_number: int, chapter_title: str) -> str:
    """
    Generate the JSON output schema for chapter writing.

    Args:
        chapter_number: Chapter number
        chapter_title: Title of the chapter

    Returns:
        JSON schema template string
    """
    return f"""

            {{
                "number": {chapter_number},
                "title": "{chapter_title}",
                "content": "The full chapter text, reflection included...",
                "summary": "Two or three sentences on what happens and what changes",
                "key_lessons": ["lesson the reader takes away"]
            }}"""
