"""MCP Prompts: pre-built interaction templates for daily health review."""

from __future__ import annotations

from fastmcp import FastMCP


def register_health_prompts(mcp: FastMCP) -> None:
    """Register health domain MCP prompts."""

    @mcp.prompt()
    def daily_review_prompt(date: str = "today") -> str:
        """Prompt template for reviewing one day of health data."""
        return f"""Let's review my health data for {date}. Please use the day_summary tool and:

1. Summarize my steps, active energy and heart rate for the day
2. Describe last night's sleep: total time asleep and how it split across stages
3. Go over any workouts, using only the metrics shown for each one
4. Point out anything unusual compared to a typical day

If a section has no data, just say so."""

    @mcp.prompt()
    def sleep_review_prompt(date: str = "today") -> str:
        """Prompt template for looking at one night of sleep."""
        return f"""Please look at my sleep for the night ending on {date} using the sleep_summary tool.

1. When did the night start and end?
2. How much REM, core and deep sleep did I get?
3. How many times was I awake, and for how long in total?

Keep it short and plain-language."""
