"""
Per-viewer fields computed at fetch time.

None of these are stored. Each helper runs once over the whole fetched
dataset and returns new model instances rather than mutating its input.
"""
from collections import Counter
from typing import Dict, Iterable, List, Set

from unilink.conversations import other_party
from unilink.models import Application, Connection, Job, Post


def annotate_likes(posts: Iterable[Post], liked_post_ids: Set[str]) -> List[Post]:
    return [post.model_copy(update={"user_has_liked": post.id in liked_post_ids}) for post in posts]


def annotate_jobs(jobs: Iterable[Job], applications: Iterable[Application], viewer_id: str) -> List[Job]:
    """Attach ``applicants_count`` and ``has_applied`` to each job."""
    applications = list(applications)
    counts = Counter(app.job_id for app in applications)
    applied = {app.job_id for app in applications if app.student_id == viewer_id}
    return [
        job.model_copy(update={"applicants_count": counts.get(job.id, 0), "has_applied": job.id in applied})
        for job in jobs
    ]


def connection_status_map(connections: Iterable[Connection], viewer_id: str) -> Dict[str, str]:
    """Map each counterpart id to the status of its connection with the viewer."""
    statuses: Dict[str, str] = {}
    for connection in connections:
        if viewer_id not in (connection.requester_id, connection.recipient_id):
            continue
        statuses[other_party(connection, viewer_id)] = connection.status
    return statuses
