"""
Streamlit Frontend for HSA Tracker

This is the interface the account holder uses to log medical expenses,
keep receipts audit-ready, and see what leaving reimbursements invested
is worth.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation at every step
3. Clear error messages in plain language
4. Visual feedback for all operations
5. No hidden actions

Nothing is saved without an explicit "Save" action, and every save goes
through validation first.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import streamlit as st

from hsa_tracker.audit import create_correlation_id
from hsa_tracker.compliance import get_retention_status, missing_documents
from hsa_tracker.config import get_settings, validate_all_settings
from hsa_tracker.models import (
    AccountType,
    CoverageType,
    DigestFrequency,
    DocumentKind,
    Expense,
    ExpenseCategory,
    ExpenseInput,
    Profile,
    ProjectionParameters,
    parameters_for,
)
from hsa_tracker.orchestrator import (
    DigestJob,
    ExpenseFlow,
    ExpenseValidationError,
    ProfileFlow,
    create_app_components,
)
from hsa_tracker.projection import compare_scenarios, project_savings
from hsa_tracker.queries import (
    get_contribution_limit,
    optimize_reimbursements,
    summarize_tax_years,
    tax_year_csv,
)
from hsa_tracker.queries.formatting import format_currency, format_money


# Page configuration
st.set_page_config(
    page_title="HSA Tracker",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def current_user_id() -> str:
    return get_settings().app.owner_id


def load_profile(profile_flow: ProfileFlow) -> Optional[Profile]:
    try:
        return run_async(profile_flow.get_profile(current_user_id()))
    except Exception as e:
        st.warning(f"Couldn't load your profile: {e}")
        return None


def load_expenses(expense_flow: ExpenseFlow) -> list[Expense]:
    try:
        return run_async(expense_flow.list_expenses(current_user_id()))
    except Exception as e:
        st.error(f"Couldn't load expenses: {e}")
        return []


def label(value) -> str:
    return value.value.replace("_", " ").title()


def main():
    """Main application entry point."""
    expense_flow, profile_flow, digest_job, _ = get_components()

    st.sidebar.title("🏥 HSA Tracker")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Dashboard",
            "➕ Add Expense",
            "📋 Expenses",
            "📈 Calculator",
            "💡 Optimizer",
            "🧾 Tax Summary",
            "👤 Profile",
            "⚙️ Settings",
        ],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How it works:**
        1. Pay medical bills out of pocket
        2. Log each expense with its receipt
        3. Leave your HSA invested
        4. Reimburse yourself years later, tax-free
        """
    )

    if page == "📊 Dashboard":
        render_dashboard_page(expense_flow, profile_flow)
    elif page == "➕ Add Expense":
        render_add_expense_page(expense_flow)
    elif page == "📋 Expenses":
        render_expenses_page(expense_flow)
    elif page == "📈 Calculator":
        render_calculator_page(profile_flow)
    elif page == "💡 Optimizer":
        render_optimizer_page(expense_flow, profile_flow)
    elif page == "🧾 Tax Summary":
        render_tax_summary_page(expense_flow)
    elif page == "👤 Profile":
        render_profile_page(profile_flow)
    elif page == "⚙️ Settings":
        render_settings_page(digest_job)


def render_dashboard_page(expense_flow: ExpenseFlow, profile_flow: ProfileFlow):
    """Render the overview dashboard."""
    st.title("📊 Dashboard")

    profile = load_profile(profile_flow)
    try:
        stats = run_async(expense_flow.dashboard_stats(current_user_id(), profile))
    except Exception as e:
        st.error(f"Couldn't load your dashboard: {e}")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Expenses", format_currency(stats.total_expenses))
    col2.metric("Pending Reimbursement", format_currency(stats.pending_reimbursement))
    col3.metric("Reimbursed", format_currency(stats.total_reimbursed))
    col4.metric("Audit Ready", f"{stats.audit_readiness.ready_pct}%")

    params = parameters_for(profile)
    st.markdown(f"""
    <div class="success-box">
        <h4>💰 Investment opportunity</h4>
        <p>Leaving {format_currency(stats.pending_reimbursement)} invested for
        {params.time_horizon_years} years at {params.annual_return_pct:g}% could grow it by
        <strong>{format_currency(stats.expected_return.extra_growth)}</strong>.</p>
    </div>
    """, unsafe_allow_html=True)

    st.markdown("### By Account")
    col1, col2, col3 = st.columns(3)
    col1.metric("HSA", format_currency(stats.by_account.hsa))
    col2.metric("LPFSA", format_currency(stats.by_account.lpfsa))
    col3.metric("HCFSA", format_currency(stats.by_account.hcfsa))

    if stats.audit_readiness.missing:
        st.markdown(f"""
        <div class="warning-box">
            <h4>⚠️ Missing documentation</h4>
            <p>{stats.audit_readiness.missing} expense(s) still need a receipt plus an
            EOB or invoice to be audit-ready.</p>
        </div>
        """, unsafe_allow_html=True)

    if stats.retention_alerts:
        st.markdown(f"""
        <div class="error-box">
            <h4>🗂️ Retention alert</h4>
            <p>{stats.retention_alerts} expense(s) are close to or past the 7-year
            record retention window.</p>
        </div>
        """, unsafe_allow_html=True)


def expense_form(key: str, existing: Optional[Expense] = None) -> Optional[ExpenseInput]:
    """Render the expense form; returns the payload once submitted."""
    with st.form(key):
        col1, col2 = st.columns(2)

        with col1:
            description = st.text_input(
                "Description *",
                value=existing.description if existing else "",
                help="What was the expense for?",
            )
            amount = st.number_input(
                "Amount ($) *",
                value=float(existing.amount) if existing else 0.0,
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
            date_of_service = st.date_input(
                "Date of Service *",
                value=existing.date_of_service if existing else date.today(),
            )
            provider = st.text_input("Provider", value=existing.provider if existing else "")
            category = st.selectbox(
                "Category",
                options=list(ExpenseCategory),
                index=list(ExpenseCategory).index(existing.category) if existing else 0,
                format_func=label,
            )

        with col2:
            account_type = st.selectbox(
                "Account",
                options=list(AccountType),
                index=(
                    list(AccountType).index(existing.account_type)
                    if existing and existing.account_type else 0
                ),
                format_func=lambda x: x.value.upper(),
            )
            patient_name = st.text_input(
                "Patient", value=existing.patient_name if existing else ""
            )
            reimbursed = st.checkbox(
                "Already reimbursed", value=existing.reimbursed if existing else False
            )
            reimbursed_amount = st.number_input(
                "Reimbursed Amount ($)",
                value=float(existing.reimbursed_amount or 0) if existing else 0.0,
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
            tax_year = st.number_input(
                "Tax Year (blank = service year)",
                value=existing.tax_year if existing else None,
                min_value=1990,
                max_value=2100,
                step=1,
            )

        notes = st.text_area("Notes (optional)", value=(existing.notes or "") if existing else "")

        if not st.form_submit_button("✅ Save", type="primary"):
            return None

    return ExpenseInput(
        description=description,
        amount=Decimal(str(amount)),
        date_of_service=date_of_service,
        provider=provider,
        patient_name=patient_name,
        category=category,
        account_type=account_type,
        notes=notes or None,
        reimbursed=reimbursed,
        reimbursed_amount=Decimal(str(reimbursed_amount)) if reimbursed else None,
        reimbursed_date=existing.reimbursed_date if existing else None,
        tax_year=int(tax_year) if tax_year else None,
        receipt_urls=existing.receipt_urls if existing else [],
        eob_urls=existing.eob_urls if existing else [],
        invoice_urls=existing.invoice_urls if existing else [],
        credit_card_statement_urls=existing.credit_card_statement_urls if existing else [],
    )


def render_add_expense_page(expense_flow: ExpenseFlow):
    """Render the new expense form."""
    st.title("➕ Add Expense")
    st.markdown("Log a medical expense you paid out of pocket.")

    payload = expense_form("add_expense")
    if payload is None:
        return

    try:
        expense, result = run_async(
            expense_flow.add_expense(
                current_user_id(),
                payload,
                correlation_id=create_correlation_id(),
            )
        )
    except ExpenseValidationError as e:
        st.markdown(f"""
        <div class="error-box">
            <h4>❌ Not saved</h4>
            <p>{e}</p>
        </div>
        """, unsafe_allow_html=True)
        return
    except Exception as e:
        st.error(f"Failed to save: {str(e)}")
        return

    st.markdown(f"""
    <div class="success-box">
        <h3>✅ Expense Saved</h3>
        <p><strong>{expense.description}</strong> for {format_money(expense.amount)}
        on {expense.date_of_service.strftime('%d %B %Y')}</p>
    </div>
    """, unsafe_allow_html=True)
    for warning in result.warnings:
        st.warning(warning)
    st.info("Attach the receipt from the Expenses page to make it audit-ready.")


def render_expense_detail(expense_flow: ExpenseFlow, expense: Expense):
    user_id = current_user_id()
    key = str(expense.id)

    missing = missing_documents(expense)
    if missing:
        st.warning("Missing: " + ", ".join(label(kind) for kind in missing))
    else:
        st.success("Audit-ready")
    st.caption(f"Retention: {label(get_retention_status(expense.effective_tax_year))}")

    for kind in DocumentKind:
        for url in expense.documents(kind):
            col1, col2 = st.columns([4, 1])
            col1.markdown(f"{label(kind)}: [{url.rsplit('/', 1)[-1]}]({url})")
            if col2.button("🗑️", key=f"detach-{key}-{url}"):
                try:
                    run_async(expense_flow.detach_document(user_id, expense.id, url))
                    st.rerun()
                except Exception as e:
                    st.error(f"Couldn't remove document: {e}")

    kind = st.selectbox(
        "Document type",
        options=list(DocumentKind),
        format_func=label,
        key=f"kind-{key}",
    )
    uploaded = st.file_uploader(
        "Attach a document",
        type=get_settings().app.supported_formats_list,
        key=f"upload-{key}",
    )
    if uploaded and st.button("📎 Upload", key=f"upload-btn-{key}"):
        with st.spinner("Uploading..."):
            try:
                run_async(expense_flow.attach_document(
                    user_id, expense.id, kind, uploaded.read(), uploaded.name
                ))
                st.rerun()
            except Exception as e:
                st.error(f"Upload failed: {e}")

    col1, col2 = st.columns(2)
    if not expense.reimbursed and col1.button("💵 Mark Reimbursed", key=f"reimburse-{key}"):
        try:
            run_async(expense_flow.mark_reimbursed(user_id, expense.id))
            st.rerun()
        except Exception as e:
            st.error(f"Couldn't mark reimbursed: {e}")

    if col2.button("❌ Delete", key=f"delete-{key}"):
        try:
            run_async(expense_flow.delete_expense(user_id, expense.id))
            st.rerun()
        except Exception as e:
            st.error(f"Couldn't delete: {e}")

    # Streamlit doesn't allow an expander inside the row's expander
    if st.checkbox("✏️ Edit", key=f"edit-toggle-{key}"):
        payload = expense_form(f"edit-{key}", existing=expense)
        if payload is not None:
            try:
                run_async(expense_flow.update_expense(user_id, expense.id, payload))
                st.rerun()
            except ExpenseValidationError as e:
                st.error(str(e))
            except Exception as e:
                st.error(f"Failed to save: {e}")


def render_expenses_page(expense_flow: ExpenseFlow):
    """Render the expense list."""
    st.title("📋 Your Expenses")

    expenses = load_expenses(expense_flow)
    if not expenses:
        st.info(
            "📋 Your expenses will appear here once you add them. "
            "Use the 'Add Expense' page to log your first one."
        )
        return

    col1, col2 = st.columns(2)
    with col1:
        status_filter = st.selectbox(
            "Filter by Status",
            options=["All", "Pending", "Reimbursed"],
        )
    with col2:
        years = sorted({e.effective_tax_year for e in expenses}, reverse=True)
        year_filter = st.selectbox(
            "Tax Year",
            options=[None] + years,
            format_func=lambda x: "All Years" if x is None else str(x),
        )

    if status_filter != "All":
        expenses = [e for e in expenses if e.reimbursed == (status_filter == "Reimbursed")]
    if year_filter is not None:
        expenses = [e for e in expenses if e.effective_tax_year == year_filter]

    st.markdown("---")
    for expense in expenses:
        status = "✅" if expense.reimbursed else "⏳"
        with st.expander(
            f"{status} {expense.date_of_service} · {expense.description} · "
            f"{format_money(expense.amount)}"
        ):
            render_expense_detail(expense_flow, expense)


def parameters_inputs(defaults: ProjectionParameters, key: str) -> ProjectionParameters:
    col1, col2 = st.columns(2)
    with col1:
        initial_balance = st.number_input(
            "Current balance ($)", value=float(defaults.initial_balance), key=f"{key}-bal"
        )
        annual_contribution = st.number_input(
            "Annual contribution ($)", value=float(defaults.annual_contribution), key=f"{key}-contrib"
        )
        contribution_increase = st.number_input(
            "Yearly contribution increase (%)",
            value=float(defaults.contribution_increase_pct),
            key=f"{key}-inc",
        )
    with col2:
        annual_return = st.slider(
            "Expected annual return (%)", 0.0, 15.0, float(defaults.annual_return_pct), 0.5,
            key=f"{key}-ret",
        )
        horizon = st.slider(
            "Years", 0, 50, int(defaults.time_horizon_years), key=f"{key}-years"
        )
        federal = st.number_input(
            "Federal tax bracket (%)", value=float(defaults.federal_tax_pct), key=f"{key}-fed"
        )
        state = st.number_input(
            "State tax rate (%)", value=float(defaults.state_tax_pct), key=f"{key}-state"
        )

    return ProjectionParameters(
        initial_balance=initial_balance,
        annual_contribution=annual_contribution,
        annual_return_pct=annual_return,
        time_horizon_years=horizon,
        federal_tax_pct=federal,
        state_tax_pct=state,
        contribution_increase_pct=contribution_increase,
    )


def render_calculator_page(profile_flow: ProfileFlow):
    """Render the growth projection calculator."""
    st.title("📈 Growth Calculator")

    profile = load_profile(profile_flow)
    params = parameters_inputs(parameters_for(profile), "calc")
    projection = project_savings(params)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Projected Balance", format_currency(projection.summary.projected_balance))
    col2.metric("Contributed", format_currency(projection.summary.total_contributed))
    col3.metric("Growth", format_currency(projection.summary.total_growth))
    col4.metric("Tax Savings", format_currency(projection.summary.total_tax_savings))

    st.line_chart({
        "HSA": [p.balance for p in projection.points],
        "Taxable account": [p.taxable_equivalent for p in projection.points],
    })
    st.caption(
        f"HSA advantage over a taxable account: "
        f"{format_currency(projection.summary.hsa_advantage)}"
    )

    if profile:
        limit = get_contribution_limit(profile.coverage_type, profile.date_of_birth)
        st.info(f"Your contribution limit this year is {format_currency(limit)}.")

    st.markdown("### Compare returns")
    results = compare_scenarios([
        ("Conservative (4%)", params.model_copy(update={"annual_return_pct": 4.0})),
        ("Your assumption", params),
        ("Aggressive (10%)", params.model_copy(update={"annual_return_pct": 10.0})),
    ])
    for col, result in zip(st.columns(len(results)), results):
        col.metric(
            result.name,
            format_currency(result.summary.projected_balance),
            delta=format_currency(result.balance_delta) if result.balance_delta else None,
        )


def render_optimizer_page(expense_flow: ExpenseFlow, profile_flow: ProfileFlow):
    """Render the reimbursement optimizer."""
    st.title("💡 Reimbursement Optimizer")

    params = parameters_for(load_profile(profile_flow))
    report = optimize_reimbursements(
        load_expenses(expense_flow),
        params.annual_return_pct,
        params.time_horizon_years,
    )

    col1, col2, col3 = st.columns(3)
    col1.metric("Pending", format_currency(report.total_pending))
    col2.metric("Value Today", format_currency(report.total_current_value))
    col3.metric("Future Value", format_currency(report.total_future_value))

    for insight in report.insights:
        st.info(insight)

    for item in report.items:
        st.markdown(
            f"**{item.expense.description}** · {format_money(item.expense.amount)} → "
            f"{format_currency(item.future_value)} "
            f"(+{item.growth_percent:.0f}% over {item.remaining_years:.1f} more years)"
        )


def render_tax_summary_page(expense_flow: ExpenseFlow):
    """Render per-year summaries with CSV export."""
    st.title("🧾 Tax Summary")

    summaries = summarize_tax_years(load_expenses(expense_flow))
    if not summaries:
        st.info("No expenses yet.")
        return

    for summary in summaries:
        with st.expander(f"{summary.year} · {format_money(summary.total)}"):
            col1, col2, col3 = st.columns(3)
            col1.metric("Total", format_money(summary.total))
            col2.metric("Reimbursed", format_money(summary.reimbursed))
            col3.metric("Pending", format_money(summary.pending))
            st.caption(
                f"{summary.audit_ready} audit-ready, {summary.audit_missing} missing documents"
            )
            for row in summary.by_category:
                st.markdown(f"- {label(row.category)}: {row.count} · {format_money(row.total)}")
            st.download_button(
                "⬇️ Download CSV",
                data=tax_year_csv(summary),
                file_name=f"hsa-expenses-{summary.year}.csv",
                mime="text/csv",
                key=f"csv-{summary.year}",
            )


def render_profile_page(profile_flow: ProfileFlow):
    """Render profile, assumptions and bank link."""
    st.title("👤 Profile")
    user_id = current_user_id()
    profile = load_profile(profile_flow) or Profile(id=user_id)

    with st.form("profile"):
        col1, col2 = st.columns(2)
        with col1:
            first_name = st.text_input("First name", value=profile.first_name)
            last_name = st.text_input("Last name", value=profile.last_name)
            email = st.text_input("Email", value=profile.email)
            date_of_birth = st.date_input(
                "Date of birth", value=profile.date_of_birth, min_value=date(1900, 1, 1)
            )
            coverage_type = st.selectbox(
                "Coverage",
                options=list(CoverageType),
                index=list(CoverageType).index(profile.coverage_type),
                format_func=label,
            )
        with col2:
            balance = st.number_input(
                "Current HSA balance ($)", value=float(profile.current_hsa_balance or 0)
            )
            contribution = st.number_input(
                "Annual contribution ($)", value=float(profile.annual_contribution or 0)
            )
            expected_return = st.number_input(
                "Expected annual return (%)", value=float(profile.expected_annual_return or 7)
            )
            horizon = st.number_input(
                "Time horizon (years)", value=int(profile.time_horizon_years or 20), step=1
            )
            federal = st.number_input(
                "Federal tax bracket (%)", value=float(profile.federal_tax_bracket or 22)
            )
            state = st.number_input("State tax rate (%)", value=float(profile.state_tax_rate or 5))

        digest_enabled = st.checkbox("Email me a digest", value=profile.email_digest_enabled)
        digest_frequency = st.selectbox(
            "Digest frequency",
            options=list(DigestFrequency),
            index=list(DigestFrequency).index(profile.email_digest_frequency),
            format_func=label,
        )

        if st.form_submit_button("✅ Save Profile", type="primary"):
            updated = profile.model_copy(update={
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "date_of_birth": date_of_birth,
                "coverage_type": coverage_type,
                "current_hsa_balance": balance,
                "annual_contribution": contribution,
                "expected_annual_return": expected_return,
                "time_horizon_years": int(horizon),
                "federal_tax_bracket": federal,
                "state_tax_rate": state,
                "email_digest_enabled": digest_enabled,
                "email_digest_frequency": digest_frequency,
            })
            try:
                run_async(profile_flow.save_profile(updated))
                st.success("✅ Profile saved")
            except Exception as e:
                st.error(f"Failed to save: {e}")

    st.markdown("---")
    st.markdown("### Bank Connection")
    if profile.bank_linked:
        st.success("✅ HSA account linked")
        col1, col2 = st.columns(2)
        if col1.button("🔄 Refresh Balance"):
            try:
                balance = run_async(profile_flow.refresh_balance(user_id))
                st.success(f"Balance updated: {format_money(balance)}")
            except Exception as e:
                st.error(f"Couldn't refresh balance: {e}")
        if col2.button("🔌 Disconnect"):
            try:
                run_async(profile_flow.unlink_bank(user_id))
                st.rerun()
            except Exception as e:
                st.error(f"Couldn't disconnect: {e}")
    else:
        st.markdown("Link your HSA account to keep your balance current.")
        if st.button("🔗 Create Link Token"):
            try:
                token = run_async(profile_flow.create_link_token(user_id))
                st.code(token)
                st.caption("Open Plaid Link with this token, then paste the public token below.")
            except Exception as e:
                st.error(f"Bank linking unavailable: {e}")
        public_token = st.text_input("Public token from Plaid Link")
        account_id = st.text_input("Account ID (optional)")
        if public_token and st.button("✅ Link Account"):
            try:
                run_async(profile_flow.link_bank(user_id, public_token, account_id or None))
                st.rerun()
            except Exception as e:
                st.error(f"Couldn't link account: {e}")


def render_settings_page(digest_job: Optional[DigestJob]):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Cloudinary (Documents)", "cloudinary"),
        ("Resend (Email Digest)", "resend"),
        ("Plaid (Bank Balance)", "plaid"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Email Digest")
    if digest_job is None:
        st.info("Configure storage and Resend to send digests.")
    else:
        secret = st.text_input("Cron secret", type="password")
        if st.button("📧 Send Due Digests Now"):
            if not digest_job.authorize(f"Bearer {secret}"):
                st.error("Unauthorized")
            else:
                with st.spinner("Sending..."):
                    result = run_async(digest_job.run())
                st.success(result.message)
                if result.failed:
                    st.warning("Failed: " + ", ".join(result.failed))

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
