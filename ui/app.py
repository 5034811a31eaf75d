# ui/app.py

import streamlit as st
import requests
import pandas as pd
import uuid
import json
import os

# --- Configuration ---
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
CHANNEL_TYPES = ["rest-hook", "websocket", "email", "sms", "message"]
st.set_page_config(page_title="FHIR Subscriptions", layout="wide")
st.title("FHIR Subscription Notifications - Operator UI")

# --- Helper Functions to Interact with API ---

def handle_response(response, success_status=200):
    """Checks response status and returns JSON or None."""
    if response.status_code == success_status:
        try:
            return response.json()
        except requests.exceptions.JSONDecodeError:
            st.error("Failed to decode JSON response from API.")
            return None
    else:
        try:
            detail = response.json().get("detail", "Unknown error")
        except requests.exceptions.JSONDecodeError:
            detail = f"Unknown error (Status code: {response.status_code})"
        st.error(f"API Error ({response.status_code}): {detail}")
        return None

def get_subscriptions(status=None, criteria=None):
    """Fetches subscriptions, optionally filtered by status and criteria."""
    params = {}
    if status:
        params["status"] = status
    if criteria:
        params["criteria"] = criteria
    try:
        response = requests.get(f"{API_BASE_URL}/Subscription", params=params)
        return handle_response(response)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error fetching subscriptions: {e}")
        return None

def create_subscription(criteria, channel_type, endpoint=None, headers=None, reason=None):
    """Creates a subscription; requested subscriptions are activated by the API."""
    channel = {"type": channel_type}
    if endpoint:
        channel["endpoint"] = endpoint
    if headers:
        channel["header"] = headers
    payload = {"criteria": criteria, "channel": channel}
    if reason:
        payload["reason"] = reason

    try:
        response = requests.post(f"{API_BASE_URL}/Subscription", json=payload)
        return handle_response(response, success_status=201)
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error creating subscription: {e}")
        return None

def run_operation(sub_id, operation):
    """Runs $activate or $deactivate on a subscription."""
    try:
        uuid.UUID(sub_id) # Validate UUID
        response = requests.post(f"{API_BASE_URL}/Subscription/{sub_id}/${operation}")
        return handle_response(response)
    except ValueError:
        st.error("Invalid Subscription ID format. Please enter a valid UUID.")
        return None
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error running ${operation}: {e}")
        return None

def get_subscription_health(sub_id):
    """Fetches delivery health for one subscription."""
    try:
        uuid.UUID(sub_id) # Validate UUID
        response = requests.get(f"{API_BASE_URL}/Subscription/{sub_id}/$status")
        return handle_response(response)
    except ValueError:
        st.error("Invalid Subscription ID format. Please enter a valid UUID.")
        return None
    except requests.exceptions.RequestException as e:
        st.error(f"Connection Error fetching status: {e}")
        return None

# --- Streamlit UI Layout ---

tab1, tab2 = st.tabs(["Manage Subscriptions", "Delivery Health"])

with tab1:
    st.header("Manage Subscriptions")

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Existing Subscriptions")
        status_filter = st.selectbox("Status", ["", "requested", "active", "error", "off"])
        criteria_filter = st.text_input("Criteria contains")

        subs_data = get_subscriptions(status_filter or None, criteria_filter or None)
        if subs_data is not None:
            if subs_data:
                df_subs = pd.json_normalize(subs_data)
                st.dataframe(
                    df_subs[['id', 'status', 'criteria', 'channel.type', 'channel.endpoint', 'errorCount', 'lastError']],
                    use_container_width=True,
                )
            else:
                st.info("No subscriptions found.")
        else:
            st.warning("Could not fetch subscriptions.")

    with col2:
        st.subheader("Create New Subscription")
        with st.form("create_sub_form"):
            new_criteria = st.text_input("Criteria*", help="e.g. Observation?status=final&code=85354-9")
            new_channel = st.selectbox("Channel", CHANNEL_TYPES)
            new_endpoint = st.text_input("Endpoint", help="Required for rest-hook.")
            new_headers = st.text_area("Headers (JSON object, optional)")
            new_reason = st.text_input("Reason (optional)")
            submitted_create = st.form_submit_button("Create Subscription")

            if submitted_create:
                if not new_criteria:
                    st.warning("Criteria is required.")
                else:
                    headers = None
                    if new_headers.strip():
                        try:
                            headers = json.loads(new_headers)
                        except json.JSONDecodeError:
                            st.error("Headers must be a JSON object.")
                    result = create_subscription(
                        new_criteria, new_channel, new_endpoint or None, headers, new_reason or None
                    )
                    if result:
                        st.success(f"Subscription created ({result.get('status')}). ID: {result.get('id')}")

        st.subheader("Activate / Deactivate")
        sub_id_op = st.text_input("Subscription ID", key="op_sub_id", help="Enter the full UUID.")
        op_col1, op_col2 = st.columns(2)
        if op_col1.button("Activate", type="primary"):
            if sub_id_op:
                result = run_operation(sub_id_op, "activate")
                if result:
                    st.success(f"Subscription {sub_id_op} is {result.get('status')}.")
            else:
                st.warning("Please enter a Subscription ID.")
        if op_col2.button("Deactivate"):
            if sub_id_op:
                result = run_operation(sub_id_op, "deactivate")
                if result:
                    st.success(f"Subscription {sub_id_op} is {result.get('status')}.")
            else:
                st.warning("Please enter a Subscription ID.")


with tab2:
    st.header("Delivery Health")

    sub_id_health = st.text_input("Subscription ID", key="health_sub_id", help="Enter the UUID of the subscription.")

    if st.button("Fetch Health", key="fetch_health"):
        if sub_id_health:
            health = get_subscription_health(sub_id_health)
            if health:
                st.metric("Status", health.get('status', 'N/A'))
                col1, col2, col3 = st.columns(3)
                col1.metric("Consecutive Errors", health.get('errorCount', 'N/A'))
                col2.metric(
                    "Last Notification",
                    pd.to_datetime(health.get('lastNotification')).strftime('%Y-%m-%d %H:%M:%S UTC') if health.get('lastNotification') else 'N/A',
                )
                col3.metric(
                    "Last Success",
                    pd.to_datetime(health.get('lastSuccessfulNotification')).strftime('%Y-%m-%d %H:%M:%S UTC') if health.get('lastSuccessfulNotification') else 'N/A',
                )
                if health.get('lastError'):
                    st.error(f"Last Error: {health.get('lastError')}")
        else:
            st.warning("Please enter a Subscription ID.")
