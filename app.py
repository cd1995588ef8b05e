"""
UniLink - Streamlit front-end.

Screens and their realtime subscriptions live on one background asyncio loop
shared by the process; Streamlit reruns submit coroutines to it and read the
screens' local state to render.
"""
import asyncio
import concurrent.futures
import logging
import threading

import streamlit as st

from unilink.config import Config, configure_logging
from unilink.errors import AuthenticationError, InputValidationError, UniLinkError
from unilink.models import JobType, OrganizationProfile
from unilink.mutations import NoticeBoard
from unilink.realtime import RealtimeHub
from unilink.screens import (CareerScreen, FeedScreen, JobBoardScreen, MessagesScreen, NetworkScreen,
                             NotificationsScreen, ProfileScreen)
from unilink.screens import feed as feed_module
from unilink.screens import jobs as jobs_module
from unilink.session import OrganizationSignUp, SessionProvider, StudentSignUp
from unilink.supabase_manager import SupabaseStore, create_supabase_client

configure_logging()
logger = logging.getLogger(__name__)

# Seconds an action may block a rerun before it continues in the background
ACTION_WAIT = 0.3

st.set_page_config(page_title="UniLink", layout="wide", initial_sidebar_state="expanded")

PAGES = {
    "Feed": FeedScreen,
    "Jobs": JobBoardScreen,
    "Network": NetworkScreen,
    "Messages": MessagesScreen,
    "Notifications": NotificationsScreen,
    "Profile": ProfileScreen,
    "Career AI": CareerScreen,
}


# ============================================================================
# EVENT LOOP & SERVICES
# ============================================================================

@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One loop per process, running forever in a daemon thread."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="unilink-loop", daemon=True).start()
    logger.info("Started background event loop")
    return loop


def run(coro, timeout: float = None):
    future = asyncio.run_coroutine_threadsafe(coro, get_event_loop())
    return future.result(timeout=timeout or Config.REMOTE_CALL_TIMEOUT * 4)


def get_services():
    """Per-browser-session client, store, realtime hub and session provider."""
    if "services" not in st.session_state:
        Config.validate()
        client = run(create_supabase_client())
        store = SupabaseStore(client)
        st.session_state.services = {
            "store": store,
            "realtime": RealtimeHub(client),
            "sessions": SessionProvider(client, store),
        }
        st.session_state.notices = NoticeBoard()
    return st.session_state.services


def show_notices() -> None:
    for notice in st.session_state.notices.drain():
        icon = "⚠️" if notice.level == "warning" else "❌" if notice.level == "error" else "ℹ️"
        st.toast(notice.message, icon=icon)


def _log_background_failure(future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"Background action failed: {future.exception()}")


def act(coro, wait: float = ACTION_WAIT):
    """
    Start a screen operation and give it ``wait`` seconds to finish.

    Validation runs before any remote call, so its errors surface within the
    wait and become an inline warning. A slower write keeps running on the
    background loop while the page reruns with the optimistic state.
    """
    future = asyncio.run_coroutine_threadsafe(coro, get_event_loop())
    try:
        return future.result(timeout=wait)
    except InputValidationError as e:
        st.warning(str(e))
        return None
    except concurrent.futures.TimeoutError:
        future.add_done_callback(_log_background_failure)
        st.session_state.setdefault("in_flight", []).append(future)
        return None


def show_pending() -> None:
    pending = [f for f in st.session_state.get("in_flight", []) if not f.done()]
    st.session_state.in_flight = pending
    if pending:
        st.caption(f"Saving {len(pending)} change(s)... the page updates on your next action.")


def open_screen(page: str, **kwargs):
    services = get_services()
    current = st.session_state.get("screen")
    if current is not None:
        run(current.exit())
    screen = PAGES[page](services["store"], services["realtime"], st.session_state.context,
                        st.session_state.notices, **kwargs)
    run(screen.enter())
    st.session_state.screen = screen
    st.session_state.page = page
    return screen


# ============================================================================
# AUTH
# ============================================================================

def render_auth() -> None:
    sessions = get_services()["sessions"]
    st.title("UniLink")
    login_tab, signup_tab = st.tabs(["Sign in", "Create account"])

    with login_tab:
        with st.form("login"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in"):
                try:
                    run(sessions.sign_in(email, password))
                except AuthenticationError as e:
                    st.error(f"Sign-in failed: {e}")
                    return
                st.session_state.context = run(sessions.load_context())
                st.rerun()

    with signup_tab:
        account_type = st.radio("I am a", ["Student", "Organization"], horizontal=True)
        with st.form("signup"):
            email = st.text_input("Email", key="signup_email")
            password = st.text_input("Password", type="password", key="signup_password")
            if account_type == "Student":
                name = st.text_input("Full name")
                university = st.text_input("University")
                department = st.text_input("Department")
            else:
                name = st.text_input("Company name")
                industry = st.text_input("Industry")
                website = st.text_input("Website")
                location = st.text_input("Location")
            if st.form_submit_button("Create account"):
                try:
                    if account_type == "Student":
                        details = StudentSignUp(name=name, university=university, department=department)
                    else:
                        details = OrganizationSignUp(company_name=name, industry=industry,
                                                     website=website, location=location)
                    run(sessions.sign_up(email, password, details))
                except (ValueError, UniLinkError) as e:
                    st.error(f"Sign-up failed: {e}")
                    return
                st.success("Account created. Check your email, then sign in.")


# ============================================================================
# PAGES
# ============================================================================

def render_feed(screen: FeedScreen) -> None:
    if screen.campus_available:
        choice = st.radio("Feed", [feed_module.GLOBAL, feed_module.CAMPUS], horizontal=True,
                          index=0 if screen.feed_type == feed_module.GLOBAL else 1)
        screen.set_feed_type(choice)

    with st.form("new_post", clear_on_submit=True):
        content = st.text_area("Share an update")
        image_url = st.text_input("Image URL (optional)")
        project_link = st.text_input("Project link (optional)")
        if st.form_submit_button("Post"):
            act(screen.create_post(content, image_url=image_url, project_link=project_link))

    for post in screen.visible_posts():
        with st.container(border=True):
            author = post.author.name if post.author else "Unknown"
            st.markdown(f"**{author}** · {post.tag or ''} · {post.created_at:%d %b %H:%M}")
            st.write(post.content)
            if post.image_url:
                st.image(post.image_url)
            if post.project_link:
                st.markdown(f"[Project]({post.project_link})")
            like_col, comment_col = st.columns(2)
            label = f"{'♥' if post.user_has_liked else '♡'} {post.likes}"
            if like_col.button(label, key=f"like_{post.id}"):
                act(screen.toggle_like(post.id))
                st.rerun()
            with comment_col.expander(f"💬 {post.comments_count}"):
                if post.id not in screen.comments:
                    run(screen.load_comments(post.id))
                for comment in screen.thread(post.id):
                    name = comment.author.name if comment.author else "Someone"
                    st.markdown(f"**{name}**: {comment.content}")
                text = st.text_input("Comment", key=f"comment_{post.id}")
                if st.button("Send", key=f"send_comment_{post.id}"):
                    act(screen.add_comment(post.id, text))
                    st.rerun()


def render_jobs(screen: JobBoardScreen) -> None:
    if screen.is_organization:
        tab = st.radio("View", [jobs_module.MARKET, jobs_module.LISTINGS], horizontal=True,
                       index=0 if screen.tab == jobs_module.MARKET else 1)
        run(screen.set_tab(tab))
        with st.expander("Post a job"):
            with st.form("post_job", clear_on_submit=True):
                title = st.text_input("Title")
                location = st.text_input("Location")
                job_type = st.selectbox("Type", [t.value for t in JobType])
                is_remote = st.checkbox("Remote")
                is_paid = st.checkbox("Paid", value=True)
                if st.form_submit_button("Publish"):
                    act(screen.post_job(title, location, job_type, is_remote, is_paid))

    screen.search = st.text_input("Search jobs", value=screen.search)
    screen.set_filter(st.radio("Filter", list(jobs_module.FILTERS), horizontal=True,
                               index=jobs_module.FILTERS.index(screen.category)))

    for job in screen.visible_jobs():
        with st.container(border=True):
            st.markdown(f"**{job.title}** · {job.company} · {job.location}")
            st.caption(f"{job.type} · {'Remote' if job.is_remote else 'On-site'} · "
                       f"{'Paid' if job.is_paid else 'Unpaid'} · {job.applicants_count} applicants")
            if job.owner_id == screen.user_id:
                view_col, delete_col = st.columns(2)
                if view_col.button("Applicants", key=f"applicants_{job.id}"):
                    run(screen.view_applicants(job.id))
                if delete_col.button("Delete", key=f"delete_{job.id}"):
                    act(screen.delete_job(job.id))
                    st.rerun()
                for application in screen.applicants.get(job.id, []):
                    student = application.student.name if application.student else application.student_id
                    st.write(f"{student}: {application.status}")
            elif not screen.is_organization:
                if st.button("Applied" if job.has_applied else "Apply", key=f"apply_{job.id}",
                             disabled=job.has_applied):
                    act(screen.apply(job.id))
                    st.rerun()


def render_network(screen: NetworkScreen) -> None:
    for request in screen.incoming_requests():
        if st.button(f"Accept request from {request.requester_id}", key=f"accept_{request.id}"):
            act(screen.accept_request(request.requester_id))
            st.rerun()

    screen.search = st.text_input("Search people", value=screen.search)
    for person in screen.directory():
        with st.container(border=True):
            detail = person.industry if isinstance(person, OrganizationProfile) else person.university
            st.markdown(f"**{person.name}** {'✔' if person.is_verified else ''} · {detail or ''}")
            status = screen.status_with(person.id)
            if status:
                st.caption(status.capitalize())
            elif st.button("Connect", key=f"connect_{person.id}"):
                act(screen.connect(person.id))
                st.rerun()


def render_messages(screen: MessagesScreen) -> None:
    if not screen.conversations:
        st.info("Connect with people to start messaging.")
        return
    names = {p.id: p.name for p in screen.conversations}
    other_id = st.selectbox("Conversation", list(names), format_func=names.get)
    if other_id != (screen.active.id if screen.active else None):
        run(screen.open_chat(other_id))

    for message in screen.messages:
        who = "You" if message.sender_id == screen.user_id else names.get(message.sender_id, "")
        st.markdown(f"**{who}**: {message.content}")
    with st.form("send_message", clear_on_submit=True):
        text = st.text_input("Message")
        if st.form_submit_button("Send"):
            act(screen.send(text))
            st.rerun()


def render_notifications(screen: NotificationsScreen) -> None:
    st.caption(f"{screen.unread_count} unread")
    if st.button("Mark all as read"):
        act(screen.mark_all_read())
        st.rerun()
    for notification in screen.notifications:
        actor = notification.actor_data.name if notification.actor_data else ""
        marker = "" if notification.is_read else "🔵 "
        if st.button(f"{marker}{actor} {notification.content}", key=f"notification_{notification.id}"):
            act(screen.mark_as_read(notification.id))
            st.rerun()


def render_profile(screen: ProfileScreen) -> None:
    profile = screen.viewed
    if profile is None:
        st.error(screen.error or "Profile not found.")
        return
    st.header(f"{profile.name} {'✔' if profile.is_verified else ''}")
    st.write(profile.bio)
    if profile.skills:
        st.caption("Skills: " + ", ".join(profile.skills))

    if screen.is_admin and st.button("Revoke verification" if profile.is_verified else "Verify"):
        act(screen.toggle_verification())
        st.rerun()

    if screen.is_own:
        with st.form("edit_profile"):
            form = {name: st.text_input(name.capitalize(), value=value)
                    for name, value in screen.form_data().items()}
            if st.form_submit_button("Save"):
                act(screen.save(form))
                st.rerun()
    elif screen.connection_status:
        st.caption(screen.connection_status.capitalize())
    elif st.button("Connect"):
        act(screen.connect())
        st.rerun()


def render_career(screen: CareerScreen) -> None:
    if st.button("Generate my roadmap"):
        with st.spinner("Thinking..."):
            run(screen.generate(), timeout=Config.REMOTE_CALL_TIMEOUT * 3)
    if screen.roadmap:
        st.markdown(screen.roadmap)


RENDERERS = {
    "Feed": render_feed,
    "Jobs": render_jobs,
    "Network": render_network,
    "Messages": render_messages,
    "Notifications": render_notifications,
    "Profile": render_profile,
    "Career AI": render_career,
}


# ============================================================================
# MAIN
# ============================================================================

def main() -> None:
    services = get_services()
    if "context" not in st.session_state:
        st.session_state.context = run(services["sessions"].load_context())
    if st.session_state.context is None:
        render_auth()
        return

    context = st.session_state.context
    with st.sidebar:
        st.title("UniLink")
        if context.profile is not None:
            st.caption(context.profile.name)
        page = st.radio("Go to", list(PAGES), index=list(PAGES).index(st.session_state.get("page") or "Feed"))
        if st.button("Refresh"):
            st.session_state.page = None
        if st.button("Sign out"):
            screen = st.session_state.get("screen")
            if screen is not None:
                run(screen.exit())
            run(services["sessions"].sign_out())
            for key in ("context", "screen", "page"):
                st.session_state.pop(key, None)
            st.rerun()

    screen = st.session_state.get("screen")
    if screen is None or st.session_state.get("page") != page:
        screen = open_screen(page)

    if screen.error:
        st.error(screen.error)
    RENDERERS[page](screen)
    show_pending()
    show_notices()


main()
