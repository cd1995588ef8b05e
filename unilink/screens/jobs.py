"""Job board screen: listings, applications and applicant review."""
import logging
from typing import Dict, Hashable, List, Optional

from unilink.derived import annotate_jobs
from unilink.errors import ConflictError, InputValidationError, UniLinkError
from unilink.merge import NEWEST_FIRST, LiveList
from unilink.models import (Application, ApplicationStatus, Job, JobType, OrganizationProfile, parse)
from unilink.mutations import Mutation, MutationResult
from unilink.realtime import DELETE, INSERT, UPDATE, ChangeEvent
from unilink.screens.base import Screen
from unilink.session import requires_session
from unilink.supabase_manager import Join

logger = logging.getLogger(__name__)

STUDENT = {"student": Join("profiles", "student_id")}

ALL = "All"
SIWES = "SIWES"
INTERNSHIP = "Internship"
REMOTE = "Remote"
PAID = "Paid"
FILTERS = (ALL, SIWES, INTERNSHIP, REMOTE, PAID)

LISTINGS = "listings"
MARKET = "market"

ALREADY_APPLIED = "You have already applied for this job."


def matches_filter(job: Job, category: str) -> bool:
    if category == SIWES:
        return job.type == JobType.SIWES
    if category == INTERNSHIP:
        return job.type == JobType.INTERNSHIP
    if category == REMOTE:
        return job.is_remote
    if category == PAID:
        return job.is_paid
    return True


def matches_search(job: Job, query: str) -> bool:
    query = (query or "").strip().lower()
    if not query:
        return True
    return query in job.title.lower() or query in (job.company or "").lower()


class JobBoardScreen(Screen):
    name = "jobs"

    def __init__(self, store, realtime, context=None, notices=None):
        super().__init__(store, realtime, context, notices)
        self.jobs: LiveList[Job] = LiveList(NEWEST_FIRST, author_field="owner_id")
        self.applicants: Dict[str, List[Application]] = {}
        self.category = ALL
        self.search = ""
        self.tab = MARKET

    @property
    def is_organization(self) -> bool:
        return isinstance(self.profile, OrganizationProfile)

    # ============================================================================
    # LOADING
    # ============================================================================

    async def load(self) -> None:
        filters = None
        if self.is_organization and self.tab == LISTINGS:
            filters = {"owner_id": self.user_id}
        rows = await self._read("jobs", self.store.select(
            "jobs", filters, order="created_at", desc=True), default=[])
        jobs = [parse(Job, row) for row in rows]

        applications = []
        if jobs:
            app_rows = await self._read("applications", self.store.select(
                "applications", columns="id, job_id, student_id", in_={"job_id": [job.id for job in jobs]}),
                default=[])
            applications = [parse(Application, row) for row in app_rows]

        self.jobs.reset(annotate_jobs(jobs, applications, self.user_id))
        logger.info(f"Loaded {len(jobs)} jobs ({self.tab})")

    async def subscribe(self) -> None:
        await self._subscribe("jobs", [INSERT, UPDATE, DELETE], self._on_job_change)

    def _on_job_change(self, event: ChangeEvent) -> None:
        if event.type == DELETE:
            self.jobs.merge_delete(event.old.get("id"))
            return
        job = parse(Job, event.new)
        if self.tab == LISTINGS and self.is_organization and job.owner_id != self.user_id:
            return
        current = self.jobs.get(job.id)
        if current is not None:
            # Keep the per-viewer fields computed at load time.
            job = job.model_copy(update={"applicants_count": current.applicants_count,
                                         "has_applied": current.has_applied})
        if event.type == INSERT:
            self.jobs.merge_insert(job)
        else:
            self.jobs.merge_update(job)

    async def set_tab(self, tab: str) -> None:
        if tab not in (LISTINGS, MARKET):
            raise InputValidationError(f"Unknown tab: {tab}")
        if tab != self.tab:
            self.tab = tab
            await self.load()

    # ============================================================================
    # VIEW
    # ============================================================================

    def set_filter(self, category: str) -> None:
        if category not in FILTERS:
            raise InputValidationError(f"Unknown filter: {category}")
        self.category = category

    def visible_jobs(self) -> List[Job]:
        return [job for job in self.jobs if matches_filter(job, self.category) and matches_search(job, self.search)]

    def _patch_job(self, job_id: str, **changes) -> None:
        current = self.jobs.get(job_id)
        if current is not None:
            self.jobs.put(current.model_copy(update=changes))

    # ============================================================================
    # ORGANIZATION ACTIONS
    # ============================================================================

    @requires_session
    async def post_job(self, title: str, location: str = "", type: str = JobType.INTERNSHIP.value,
                       is_remote: bool = False, is_paid: bool = True) -> MutationResult:
        """
        Publish a listing as the signed-in organization.

        Args:
            title: Job title (required)
            location: Where the role is based
            type: One of the JobType values
            is_remote: Remote-friendly role
            is_paid: Paid role

        Returns:
            MutationResult: value is the stored Job on success
        """
        if not self.is_organization:
            raise InputValidationError("Only organizations can post jobs")
        title = (title or "").strip()
        if not title:
            raise InputValidationError("Job title is required")
        try:
            job_type = JobType(type)
        except ValueError as e:
            raise InputValidationError(f"Unknown job type: {type}") from e

        record = {
            "title": title,
            "company": self.profile.name or "My Company",
            "location": (location or "").strip(),
            "type": job_type.value,
            "isRemote": bool(is_remote),
            "isPaid": bool(is_paid),
            "verified": True,
            "owner_id": self.user_id,
        }

        async def remote():
            return parse(Job, await self.store.insert("jobs", record))

        return await self.coordinator.run(Mutation(
            key=("jobs", "new", title), apply=lambda: (lambda: None), remote=remote,
            settle=self.jobs.merge_insert, label="post this job",
        ))

    @requires_session
    async def delete_job(self, job_id: str) -> MutationResult:
        job = self.jobs.get(job_id)
        if job is None:
            raise InputValidationError("Unknown job")
        if job.owner_id != self.user_id:
            raise InputValidationError("Only the owner can delete this listing")

        def apply():
            removed = self.jobs.remove(job_id)
            return lambda: self.jobs.put(removed)

        async def remote():
            return await self.store.delete("jobs", {"id": job_id, "owner_id": self.user_id})

        return await self.coordinator.run(Mutation(
            key=("jobs", job_id), apply=apply, remote=remote, label="delete this listing",
        ))

    async def view_applicants(self, job_id: str) -> List[Application]:
        """Applications for a job with each student's profile joined."""
        rows = await self._read("applicants", self.store.select(
            "applications", {"job_id": job_id}, joins=STUDENT, order="created_at"), default=[])
        self.applicants[job_id] = [parse(Application, row) for row in rows]
        return self.applicants[job_id]

    def _replace_application(self, job_id: str, application: Application) -> None:
        applications = self.applicants.get(job_id, [])
        for i, current in enumerate(applications):
            if current.id == application.id:
                applications[i] = application
                return

    @requires_session
    async def set_application_status(self, job_id: str, application_id: str, status: str) -> MutationResult:
        try:
            new_status = ApplicationStatus(status).value
        except ValueError as e:
            raise InputValidationError(f"Unknown application status: {status}") from e
        before = next((app for app in self.applicants.get(job_id, []) if app.id == application_id), None)
        if before is None:
            raise InputValidationError("Unknown application")

        def apply():
            self._replace_application(job_id, before.model_copy(update={"status": new_status}))
            return lambda: self._replace_application(job_id, before)

        async def remote():
            rows = await self.store.update("applications", {"status": new_status}, {"id": application_id})
            if not rows:
                raise ConflictError("Application no longer exists")
            return rows[0]

        return await self.coordinator.run(Mutation(
            key=("applications", application_id), apply=apply, remote=remote,
            label="update the application",
        ))

    # ============================================================================
    # STUDENT ACTIONS
    # ============================================================================

    @requires_session
    async def apply(self, job_id: str) -> MutationResult:
        """
        Apply to a job as the signed-in student.

        A second application to the same job is rejected locally when this
        screen already knows about the first, and by the store otherwise.
        """
        job = self.jobs.get(job_id)
        if job is None:
            raise InputValidationError("Unknown job")
        if self.is_organization:
            raise InputValidationError("Organizations cannot apply to jobs")
        if job.has_applied:
            self.notices.post(ALREADY_APPLIED, level="warning")
            return MutationResult(ok=False, error=ConflictError(ALREADY_APPLIED))

        me = self.user_id

        def apply():
            before = self.jobs.get(job_id)
            self._patch_job(job_id, has_applied=True, applicants_count=before.applicants_count + 1)
            return lambda: self._patch_job(job_id, has_applied=before.has_applied,
                                           applicants_count=before.applicants_count)

        async def remote():
            await self.store.insert("applications", {
                "job_id": job_id,
                "student_id": me,
                "status": ApplicationStatus.PENDING.value,
            })
            try:
                return await self.store.count("applications", {"job_id": job_id})
            except UniLinkError as e:
                logger.warning(f"Could not recount applicants for job {job_id}: {e}")
                return None

        def confirm(total: Optional[int]):
            if total is not None:
                self._patch_job(job_id, applicants_count=total)

        return await self.coordinator.run(Mutation(
            key=("jobs", job_id), apply=apply, remote=remote, confirm=confirm,
            label="submit your application", conflict_message=ALREADY_APPLIED,
        ))

    async def resync(self, key: Hashable) -> None:
        if key[0] == "applications":
            await self._resync_application(key[1])
            return
        if key[0] != "jobs" or key[1] == "new":
            return
        job_id = key[1]
        rows = await self.store.select("jobs", {"id": job_id}, limit=1)
        if not rows:
            self.jobs.remove(job_id)
            return
        app_rows = await self.store.select("applications", columns="id, job_id, student_id",
                                           in_={"job_id": [job_id]})
        applications = [parse(Application, row) for row in app_rows]
        self.jobs.put(annotate_jobs([parse(Job, rows[0])], applications, self.user_id)[0])

    async def _resync_application(self, application_id: str) -> None:
        rows = await self.store.select("applications", {"id": application_id}, joins=STUDENT, limit=1)
        if rows:
            application = parse(Application, rows[0])
            self._replace_application(application.job_id, application)
            return
        for job_id, applications in self.applicants.items():
            self.applicants[job_id] = [app for app in applications if app.id != application_id]
