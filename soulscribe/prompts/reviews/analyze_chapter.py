"""
Quality Guardian Chapter Analysis Prompt

The Quality Guardian scores a chapter draft on structure, spiritual depth,
narrative flow, character development and learning integration, and returns
concrete revision suggestions for anything that falls short.
"""

ANALYZER_SYSTEM_PROMPT = """You are the Quality Guardian, an exacting but kind editor. You score \
chapters honestly and give suggestions a writer can act on in one revision. Respond with JSON only."""


def get_analyze_chapter_prompt(
    chapter_number: int,
    chapter_title: str,
    chapter_content: str,
    summary: str = "",
    max_content_chars: int = 6000
) -> str:
    """
    Generate the chapter analysis prompt.

    Long chapters are cut to ``max_content_chars`` to keep the analysis call
    within the analyzer's context budget.

    Args:
        chapter_number: Chapter being scored
        chapter_title: Title of the chapter
        chapter_content: Full chapter text
        summary: Writer's own summary, if any
        max_content_chars: Content truncation limit

    Returns:
        Formatted prompt string for the analysis
    """
    content = chapter_content
    if len(content) > max_content_chars:
        content = content[:max_content_chars] + "..."

    summary_section = f"\n            Writer's summary: {summary}\n" if summary.strip() else ""

    return f"""CHAPTER ANALYSIS - Chapter {chapter_number}: "{chapter_title}"
{summary_section}
            === CHAPTER CONTENT ===
{content}

            === EVALUATE (each 0.0-1.0) ===
            1. structure: opening hook, pacing, a turning point, a resolution
            2. spiritual_depth: genuine wisdom, rich metaphor, no preachiness
            3. narrative_flow: consistency, emotional beats, setup for what follows
            4. character_development: visible growth, distinct voices
            5. learning_integration: lessons arise from events, closing reflection present

            overall_score is your holistic 0.0-1.0 verdict. A chapter ready for
            readers scores 0.8 or above.

            For every dimension under 0.7, add a recommendation with a concrete
            suggestion the writer can apply in a single revision.

            Respond with JSON:
            {{
                "scores": {{
                    "structure": 0.8,
                    "spiritual_depth": 0.7,
                    "narrative_flow": 0.8,
                    "character_development": 0.6,
                    "learning_integration": 0.9
                }},
                "overall_score": 0.76,
                "recommendations": [
                    {{
                        "dimension": "character_development",
                        "issue": "what falls short",
                        "suggestion": "what to change"
                    }}
                ]
            }}"""
