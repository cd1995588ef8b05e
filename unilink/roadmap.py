"""Career roadmap generation with Gemini, degrading to a local roadmap without credentials."""
import asyncio
import logging
from typing import List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors

from unilink.config import Config

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Sorry, I couldn't generate a roadmap at the moment. Please try again later."
EMPTY_MESSAGE = "Could not generate roadmap."

ECONOMICS_ROADMAP = """
## 🚀 Career Path: Financial Data Analyst (Lagos Fintech)

Economics plus data skills is in high demand right now.

1.  **Immediate Step:** Go beyond Excel. Learn **SQL** and **Power BI** so you can query databases, not just read spreadsheets.
2.  **SIWES Target:** Audit and product-analytics teams at fintechs and the Big Four firms.
3.  **Project Idea:** An inflation tracker comparing market food prices with NBS data. Share it on UniLink.
"""

COMPUTING_ROADMAP = """
## 🚀 Career Path: Backend Engineer (Remote/Global)

Your computing background is the foundation; a modern stack gets you hired.

1.  **Immediate Step:** Pick one backend language (Node.js or Python) and ship a complete, deployed API.
2.  **SIWES Target:** Payments companies with structured engineering internships.
3.  **Project Idea:** A CGPA calculator API for your department, open-sourced on GitHub.
"""

GENERAL_ROADMAP = """
## 🚀 Career Path: Tech Operations & Strategy

Your background in {department} gives you domain knowledge that tech companies need.

1.  **Immediate Step:** Learn **Project Management** (Jira/Asana) and **Business Writing**.
2.  **SIWES Target:** "Operations Intern" roles at logistics and delivery startups.
3.  **Project Idea:** Organise a departmental event and document the process and budget as portfolio proof.
"""


def fallback_roadmap(department: str) -> str:
    """Deterministic roadmap used when no Gemini key is configured."""
    lowered = (department or "").lower()
    if "econ" in lowered:
        return ECONOMICS_ROADMAP
    if "computer" in lowered or "tech" in lowered:
        return COMPUTING_ROADMAP
    return GENERAL_ROADMAP.format(department=department or "General")


def build_prompt(courses: List[str], skills: List[str], department: str) -> str:
    return f"""
I am a Nigerian university student in the {department} department.
My current courses are: {', '.join(courses) or 'none listed'}.
My current skills are: {', '.join(skills) or 'none listed'}.

Please act as a career mentor. Suggest 2 specific career paths for me in the Nigerian market.
For the best option, provide a 3-step actionable roadmap that I can start today.
Keep it practical, encouraging, and localized to Nigeria (mention specific Nigerian industries or company types).
Format the output in clean Markdown.
"""


class RoadmapGenerator:
    """Suggests career paths from a student's courses, skills and department."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client=None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else Config.GEMINI_API_KEY
        self.model_id = model or Config.GEMINI_MODEL
        self.timeout = timeout if timeout is not None else Config.REMOTE_CALL_TIMEOUT * 2
        self.client = client
        if self.client is None and self.api_key:
            self.client = genai.Client(api_key=self.api_key)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def generate_roadmap(self, courses: List[str], skills: List[str], department: str) -> str:
        """
        Generate a Markdown roadmap.

        Args:
            courses: Courses the student is taking
            skills: Skills the student lists
            department: Department name ("General" if empty)

        Returns:
            str: Markdown roadmap (local fallback when Gemini is not configured)
        """
        department = department or "General"
        if not self.enabled:
            logger.info("No Gemini key configured; using local roadmap")
            return fallback_roadmap(department)

        prompt = build_prompt(courses or [], skills or [], department)
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(model=self.model_id, contents=prompt),
                timeout=self.timeout,
            )
        except (genai_errors.APIError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.error(f"Gemini roadmap generation failed: {e}")
            return UNAVAILABLE_MESSAGE
        return response.text or EMPTY_MESSAGE
