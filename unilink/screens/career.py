"""Career AI screen: a roadmap built from the viewer's courses, skills and department."""
import logging
from typing import Optional

from unilink.models import StudentProfile, parse_profile
from unilink.roadmap import RoadmapGenerator
from unilink.screens.base import Screen
from unilink.session import requires_session

logger = logging.getLogger(__name__)


class CareerScreen(Screen):
    name = "career"

    def __init__(self, store, realtime, context=None, notices=None,
                 generator: Optional[RoadmapGenerator] = None):
        super().__init__(store, realtime, context, notices)
        self.generator = generator or RoadmapGenerator()
        self.viewer = None
        self.roadmap: Optional[str] = None

    async def load(self) -> None:
        if not self.user_id:
            return
        rows = await self._read("profile", self.store.select("profiles", {"id": self.user_id}, limit=1), default=[])
        self.viewer = parse_profile(rows[0]) if rows else self.profile

    @requires_session
    async def generate(self) -> Optional[str]:
        viewer = self.viewer or self.profile
        if viewer is None:
            return None
        courses = viewer.courses if isinstance(viewer, StudentProfile) else []
        department = getattr(viewer, "department", None) or "General"
        self.roadmap = await self.generator.generate_roadmap(courses, viewer.skills, department)
        logger.info(f"Generated roadmap for {self.user_id} ({department})")
        return self.roadmap
