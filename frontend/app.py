import streamlit as st
import pandas as pd
from datetime import datetime, date

from backend.calculations import compute_end_time
from frontend.api_client import ApiError, ShiftbookApi

CURRENCY = "£"
STATUSES = ["pending", "on site", "completed"]

st.set_page_config(page_title="Shiftbook", layout="wide", page_icon="🗓️")

# Nord Theme
NORD_CSS = """
<style>
    @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;600;700;800&display=swap');

    :root {
        --polar-night-1: #2E3440;
        --polar-night-2: #3B4252;
        --polar-night-4: #4C566A;
        --snow-storm-2: #E5E9F0;
        --frost-2: #88C0D0;
        --frost-4: #5E81AC;
        --aurora-yellow: #EBCB8B;
        --aurora-green: #A3BE8C;
    }

    .stApp {
        background-color: var(--polar-night-1);
        font-family: 'Inter', sans-serif !important;
    }
    h1, h2, h3, p, label, .stMarkdown, div {
        color: var(--snow-storm-2) !important;
        font-family: 'Inter', sans-serif !important;
    }
    [data-testid="stSidebar"] {
        background-color: #242933;
        border-right: 1px solid var(--polar-night-2);
    }
    button[kind="primary"] {
        background-color: var(--aurora-green) !important;
        border-color: var(--aurora-green) !important;
        color: var(--polar-night-1) !important;
        font-weight: 600;
    }

    .metric-card {
        background-color: var(--polar-night-2);
        border: 1px solid var(--polar-night-4);
        border-radius: 8px;
        padding: 16px;
        text-align: center;
        height: 100%;
    }
    .metric-label { font-size: 0.85rem; text-transform: uppercase; letter-spacing: 0.05em; margin-bottom: 8px; }
    .metric-value { font-size: 1.8rem; font-weight: 700; color: var(--frost-2) !important; }

    .active-card {
        background-color: rgba(94, 129, 172, 0.25);
        border: 1px solid var(--frost-4);
        border-radius: 8px;
        padding: 16px;
        margin-bottom: 12px;
    }

    .stDeployButton { display: none !important; }
    footer { visibility: hidden !important; }
</style>
"""
st.markdown(NORD_CSS, unsafe_allow_html=True)

if 'user' not in st.session_state:
    st.session_state.user = None
    st.session_state.token = None
if 'editing_shift_id' not in st.session_state:
    st.session_state.editing_shift_id = None

PAGES = ["📊 Dashboard", "📅 History", "➕ Add Shift"]

def api() -> ShiftbookApi:
    return ShiftbookApi(token=st.session_state.token)

def money(value) -> str:
    return f"{CURRENCY}{float(value or 0):.2f}"

def open_in_form(shift_id):
    st.session_state.editing_shift_id = shift_id
    st.session_state.nav = PAGES[2]

def close_form_edit():
    st.session_state.editing_shift_id = None

# --- AUTH UI ---
def render_auth():
    reset_token = st.query_params.get("reset_token")

    if reset_token:
        st.markdown("<h2 style='text-align:center;'>Reset Password 🔐</h2>", unsafe_allow_html=True)
        with st.form("reset_pwd_form"):
            new_pass = st.text_input("New Password", type="password")
            conf_pass = st.text_input("Confirm Password", type="password")
            if st.form_submit_button("Update Password", type="primary"):
                if new_pass != conf_pass:
                    st.error("Passwords do not match")
                else:
                    try:
                        st.success(api().reset_password(reset_token, new_pass))
                        st.query_params.clear()
                        st.rerun()
                    except ApiError as e:
                        st.error(e.detail)
        if st.button("Back to Login"):
            st.query_params.clear()
            st.rerun()
        return

    tab1, tab2, tab3 = st.tabs(["Login", "Create Account", "Forgot Password"])

    with tab1:
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Login", type="primary"):
                try:
                    data = api().login(email, password)
                    st.session_state.user = data['user']
                    st.session_state.token = data['access_token']
                    st.rerun()
                except ApiError as e:
                    st.error(e.detail)

    with tab2:
        with st.form("register_form"):
            r_name = st.text_input("Full Name")
            r_email = st.text_input("Email")
            r_pass = st.text_input("Password (min 6 chars)", type="password")
            r_conf = st.text_input("Confirm Password", type="password")
            if st.form_submit_button("Create Account"):
                if r_pass != r_conf:
                    st.error("Passwords do not match")
                else:
                    try:
                        api().register(r_email, r_pass, r_name)
                        st.success("Account created! Please login.")
                    except ApiError as e:
                        st.error(e.detail)

    with tab3:
        st.caption("The reset link is written to the backend log.")
        f_email = st.text_input("Enter your email")
        if st.button("Send Reset Link"):
            try:
                st.info(api().forgot_password(f_email))
            except ApiError as e:
                st.error(e.detail)

# --- DIALOGS ---
@st.dialog("Edit Shift")
def edit_shift_dialog(shift):
    with st.form("edit_shift_form"):
        e_date = st.date_input("Date", value=date.fromisoformat(shift['date']))
        c1, c2 = st.columns(2)
        with c1:
            e_start = st.text_input("Start", value=shift['start_time'])
            e_hours = st.number_input("Hours", value=float(shift['hours']), step=0.1, min_value=0.0)
        with c2:
            e_end = st.text_input("End", value=shift['end_time'])
            e_rate = st.number_input("Hourly Rate", value=float(shift['hourly_rate']), step=0.01, min_value=0.0)
        current = shift['status'] if shift['status'] in STATUSES else STATUSES[-1]
        e_status = st.selectbox("Status", STATUSES, index=STATUSES.index(current))

        if st.form_submit_button("Update Record", type="primary"):
            try:
                api().update_shift(shift['id'], {
                    "date": e_date.isoformat(),
                    "start_time": e_start,
                    "end_time": e_end,
                    "hours": e_hours,
                    "hourly_rate": e_rate,
                    "status": e_status,
                })
                st.rerun()
            except ApiError as e:
                st.error(f"Failed to update shift: {e.detail}")

# --- PAGES ---
def render_dashboard():
    try:
        data = api().dashboard()
        site_names = {s['id']: s['site_name'] for s in api().sites()}
    except ApiError as e:
        st.error(f"Backend Error: {e.detail}")
        return

    st.markdown(f"<h1 style='margin:0;'>Dashboard</h1><p style='opacity:0.7;'>Overview for {data['month']}</p>",
                unsafe_allow_html=True)

    st.markdown(f"""
    <div style="display: grid; grid-template-columns: 1fr 1fr 1fr; gap: 20px; margin-bottom: 20px;">
        <div class="metric-card"><div class="metric-label">Earnings</div>
            <div class="metric-value">{money(data['total_earnings'])}</div></div>
        <div class="metric-card"><div class="metric-label">Hours</div>
            <div class="metric-value">{data['total_hours']:.1f}h</div></div>
        <div class="metric-card"><div class="metric-label">Shifts</div>
            <div class="metric-value">{data['shift_count']}</div></div>
    </div>
    """, unsafe_allow_html=True)

    active = data.get('active_shift')
    if active:
        st.markdown(f"""
        <div class="active-card">
            <div style="font-weight:700;">Active Shift: {site_names.get(active['site_id'], 'N/A')}</div>
            <div>Current Status: <b style="text-transform:uppercase;">{active['status']}</b>
            &bull; {active['start_time']} - {active['end_time']}</div>
        </div>
        """, unsafe_allow_html=True)
        try:
            if active['status'] == 'pending':
                if st.button("I am On Site", type="primary"):
                    api().clock_in(active['id'])
                    st.rerun()
            elif active['status'] == 'on site':
                if st.button("I have Left Site", type="primary", disabled=not data['can_clock_out']):
                    api().clock_out(active['id'])
                    st.rerun()
                if not data['can_clock_out']:
                    st.caption("Clock-out opens one hour before the scheduled end.")
        except ApiError as e:
            st.toast(f"Error: {e.detail}", icon="❌")

    st.subheader("Recent Shifts")
    if data['recent_shifts']:
        recent = pd.DataFrame(data['recent_shifts'])
        recent['site'] = recent['site_id'].map(site_names).fillna('N/A')
        recent['time'] = recent['start_time'] + " - " + recent['end_time']
        recent['earnings'] = recent['total_earnings'].map(money)
        st.dataframe(recent[['date', 'site', 'time', 'earnings', 'status']],
                     use_container_width=True, hide_index=True)
    else:
        st.info("No shifts found for this month.")

def render_history():
    st.markdown("<h1 style='margin:0;'>Shift History</h1>", unsafe_allow_html=True)

    f1, f2, f3, f4 = st.columns(4)
    month = f1.text_input("Month", value=datetime.now().strftime("%Y-%m"), help="YYYY-MM")
    employer = f2.text_input("Employer", placeholder="Search...")
    site = f3.text_input("Site", placeholder="Search...")
    status = f4.selectbox("Status", ["all"] + STATUSES)

    try:
        data = api().history(month, status, employer, site)
        employers = {e['id']: e['name'] for e in api().employers()}
        sites = {s['id']: s['site_name'] for s in api().sites()}
    except ApiError as e:
        st.error(e.detail)
        return

    stats = data['stats']
    s1, s2, s3 = st.columns(3)
    s1.metric("Earnings", money(stats['earnings']))
    s2.metric("Total Hours", f"{stats['hours']:.2f} hrs")
    s3.metric("Total Shifts", stats['count'])

    a1, a2 = st.columns(2)
    with a1:
        try:
            st.download_button("⬇️ Export", data=api().export_csv(month, status, employer, site),
                               file_name=f"Shifts_{month}.csv", mime="text/csv", use_container_width=True)
        except ApiError as e:
            st.error(e.detail)
    with a2:
        upload = st.file_uploader("Import CSV", type="csv", label_visibility="collapsed")
        if upload is not None and st.button("⬆️ Import", type="primary", use_container_width=True):
            try:
                result = api().import_csv(upload.name, upload.getvalue())
                st.success(f"Import successful! {result['shifts_created']} shifts, "
                           f"{result['employers_created']} new employers, {result['sites_created']} new sites.")
            except ApiError as e:
                st.error(f"Import failed: {e.detail}")

    st.divider()
    if not data['shifts']:
        st.info("No shifts found for this criteria.")
        return

    header = st.columns([2, 3, 2, 2, 1, 1, 1])
    for col, label in zip(header, ["**Date & Hours**", "**Employer & Site**", "**Earnings**", "**Status**", "", "", ""]):
        col.markdown(label)

    for shift in data['shifts']:
        row = st.columns([2, 3, 2, 2, 1, 1, 1])
        row[0].markdown(f"{shift['date']}  \n{shift['start_time']} - {shift['end_time']} ({shift['hours']}h)")
        row[1].markdown(f"{sites.get(shift['site_id'], 'N/A')}  \n{employers.get(shift['employer_id'], '')}")
        row[2].markdown(f"{money(shift['total_earnings'])}  \n{money(shift['hourly_rate'])}/h")
        row[3].write(shift['status'].upper())
        if row[4].button("✏️", key=f"edit_{shift['id']}"):
            edit_shift_dialog(shift)
        row[5].button("📝", key=f"form_{shift['id']}", help="Edit in form",
                      on_click=open_in_form, args=(shift['id'],))
        if row[6].button("🗑️", key=f"del_{shift['id']}"):
            api().delete_shift(shift['id'])
            st.rerun()

    st.subheader("Earnings")
    view = st.radio("View", ["week", "month", "year"], horizontal=True)
    points = api().chart(view)
    if points:
        st.area_chart(pd.DataFrame(points).set_index('name'))

def render_write_shift():
    editing_id = st.session_state.editing_shift_id
    try:
        employers = api().employers()
        sites = api().sites()
        editing = api().get_shift(editing_id) if editing_id else None
    except ApiError as e:
        st.error(e.detail)
        return

    title = "Edit Shift" if editing else "Add New Shift"
    st.markdown(f"<h1 style='margin:0;'>{title}</h1>", unsafe_allow_html=True)

    if editing:
        picked_emp = next((e for e in employers if e['id'] == editing['employer_id']), None)
        picked_site = next((s for s in sites if s['id'] == editing['site_id']), None)
        st.button("Cancel edit", on_click=close_form_edit)
    else:
        # Suggestions fill the form defaults
        s1, s2 = st.columns(2)
        picked_emp = s1.selectbox("Known employer", [None] + employers,
                                  format_func=lambda e: "-" if e is None else f"{e['name']} ({money(e.get('default_rate'))}/h)")
        picked_site = s2.selectbox("Known site", [None] + sites,
                                   format_func=lambda s: "-" if s is None else f"{s['site_name']} {s['postal_code']}")

    start_value = None
    if editing:
        try:
            start_value = datetime.strptime(editing['start_time'], "%H:%M").time()
        except ValueError:
            start_value = None
    default_rate = editing['hourly_rate'] if editing else (picked_emp or {}).get('default_rate')

    with st.form(f"shift_form_{editing_id or 'new'}"):
        c1, c2 = st.columns(2)
        s_date = c1.date_input("Date", value=date.fromisoformat(editing['date']) if editing else date.today())
        s_employer = c2.text_input("Employer", value=picked_emp['name'] if picked_emp else "")
        s_site = st.text_input("Site Name", value=picked_site['site_name'] if picked_site else "")

        c3, c4, c5 = st.columns(3)
        s_postal = c3.text_input("Postcode", value=picked_site['postal_code'] if picked_site else "")
        s_start = c4.time_input("Start", value=start_value)
        s_hours = c5.number_input("Hours", min_value=0.0, step=0.1,
                                  value=float(editing['hours']) if editing else 0.0)
        s_rate = st.number_input("Hourly Rate (£)", min_value=0.0, step=0.01, value=float(default_rate or 0.0))
        s_update_rate = st.checkbox("Update the employer's default rate if it differs")

        end_preview = compute_end_time(s_date, s_start.strftime("%H:%M") if s_start else "", s_hours)
        st.caption(f"Est. end: {end_preview or '--:--'}")

        if st.form_submit_button("Update Record" if editing else "Save Record", type="primary"):
            if not s_start:
                st.error("Start time is required.")
                return
            try:
                api().save_shift({
                    "date": s_date.isoformat(),
                    "employer": s_employer,
                    "site_name": s_site,
                    "postal_code": s_postal,
                    "hourly_rate": s_rate,
                    "start_time": s_start.strftime("%H:%M"),
                    "hours": s_hours,
                    "update_default_rate": s_update_rate,
                }, shift_id=editing_id)
                st.success("Shift updated." if editing else "Shift saved.")
                close_form_edit()
            except ApiError as e:
                st.error(f"Error saving shift: {e.detail}")

# --- MAIN APP ---
def main_app():
    if not st.session_state.user:
        render_auth()
        return

    user = st.session_state.user
    with st.sidebar:
        st.markdown("<h2 style='color:#88C0D0; font-weight:800; margin:0;'>Shiftbook.</h2>", unsafe_allow_html=True)
        st.markdown(f"""
        <div style="background-color: #2E3440; padding: 10px; border-radius: 6px; margin: 20px 0; border: 1px solid #3B4252;">
            <div style="font-size: 0.75rem; color: #8FBCBB; text-transform: uppercase;">Logged in as</div>
            <div style="font-weight: 600;">{user['name']}</div>
            <div style="font-size: 0.7rem; color: #4C566A;">{user['email']}</div>
        </div>
        """, unsafe_allow_html=True)

        page = st.radio("Navigate", PAGES, key="nav", label_visibility="collapsed")

        st.divider()
        if st.button("Logout", use_container_width=True):
            st.session_state.user = None
            st.session_state.token = None
            st.rerun()

    if "Add Shift" not in page:
        close_form_edit()
    if "History" in page:
        render_history()
    elif "Add Shift" in page:
        render_write_shift()
    else:
        render_dashboard()

main_app()
