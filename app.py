import numpy as np
import pandas as pd
import streamlit as st
import plotly.graph_objects as go

from config import Config
from analysis_manager import AnalysisManager
from batch_prediction_service import BatchPredictionService
from churn_scoring_service import ChurnScoringService, RiskClassifier
from data_generator import generate_users
from data_processor import DataProcessor
from filters import RiskCategoryFilter, SubscriptionFilter, SearchFilter
from insights_service import InsightsService
from models import AtRiskDefinition, MalformedRecord, SchemaMismatch, WhatIfScenario
from segment_analysis_service import SegmentAnalysisService
from what_if_service import WhatIfSimulator


RISK_COLORS = {'Low': '#00cc96', 'Medium': '#ffa15a', 'High': '#ef553b'}


def create_segment_chart(segments_df: pd.DataFrame, title: str) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=segments_df['segment_label'],
        y=segments_df['churn_rate_pct'],
        text=segments_df['churn_rate_pct'].map(lambda v: f"{v:.1f}%"),
        marker_color='#636efa',
        name='Churn Rate',
    ))
    fig.update_layout(title=title, yaxis_title="Churn Rate (%)", height=400)
    return fig


def create_risk_distribution_chart(distribution: dict) -> go.Figure:
    labels = list(distribution.keys())
    fig = go.Figure(go.Pie(
        labels=[f"{label} Risk" for label in labels],
        values=[distribution[label] for label in labels],
        marker_colors=[RISK_COLORS[label] for label in labels],
        hole=0.5,
    ))
    fig.update_layout(title="Risk Distribution", height=400)
    return fig


def create_contribution_chart(contributions: dict) -> go.Figure:
    features = {item['column']: item['feature'] for item in Config.FEATURE_IMPORTANCE}
    fig = go.Figure(go.Bar(
        x=list(contributions.values()),
        y=[features[col] for col in contributions],
        orientation='h',
        marker_color='#ab63fa',
    ))
    fig.update_layout(title="Score Contribution by Feature", xaxis_title="Contribution", height=400,
                      yaxis={'autorange': 'reversed'})
    return fig


@st.cache_data
def load_synthetic(count: int, seed: int) -> pd.DataFrame:
    return generate_users(count, seed)


def sidebar_settings(config: Config):
    st.sidebar.header("⚙️ Analysis Configuration")

    source = st.sidebar.radio("Data source", ["Synthetic", "Upload CSV"], index=0)
    uploaded = None
    count, seed = config.DEFAULT_SYNTHETIC_USERS, config.DEFAULT_SEED
    if source == "Synthetic":
        count = st.sidebar.number_input("Users", min_value=100, max_value=50000, value=count, step=100)
        seed = st.sidebar.number_input("Seed", min_value=0, value=seed, step=1)
    else:
        uploaded = st.sidebar.file_uploader("Users CSV", type=["csv"])

    st.sidebar.subheader("🎯 Risk Thresholds")
    low_min, low_max = config.LOW_RISK_MAX_RANGE
    low_pct = st.sidebar.slider("Low Risk Maximum (%)", int(low_min * 100), int(low_max * 100),
                                int(config.LOW_RISK_MAX * 100), step=5)
    medium_pct = st.sidebar.slider("Medium Risk Maximum (%)", low_pct + 10,
                                   int(config.MEDIUM_RISK_MAX_RANGE[1] * 100),
                                   max(low_pct + 10, int(config.MEDIUM_RISK_MAX * 100)), step=5)
    jitter = st.sidebar.checkbox("Add score jitter", value=config.ENABLE_JITTER,
                                 help="Adds bounded random noise to each probability (seeded)")

    st.sidebar.subheader("🔍 Filters")
    risk = st.sidebar.selectbox("Risk level", ['all', 'High', 'Medium', 'Low'], index=0)
    subscription = st.sidebar.selectbox("Subscription", ['all'] + config.SUBSCRIPTION_TYPES, index=0)
    query = st.sidebar.text_input("Search user id or country", value="")

    filters = []
    if risk != 'all':
        filters.append(RiskCategoryFilter([risk]))
    if subscription != 'all':
        filters.append(SubscriptionFilter(subscription))
    if query:
        filters.append(SearchFilter(query))

    classifier = RiskClassifier(low_pct / 100, medium_pct / 100)
    return source, uploaded, int(count), int(seed), classifier, jitter, filters


def main():
    st.set_page_config(page_title="Churn Risk Dashboard", layout="wide")
    st.title("🎧 Streaming Churn Risk Dashboard")

    config = Config()
    source, uploaded, count, seed, classifier, jitter, filters = sidebar_settings(config)
    page = st.sidebar.radio("Page", ["Overview", "Analytics", "Prediction", "What-If",
                                     "Retention Actions", "Dataset Upload"])

    scoring = ChurnScoringService(classifier=classifier, enable_jitter=jitter, rng=np.random.default_rng(seed))
    analyzer = AnalysisManager(filters, scoring_service=scoring)

    try:
        if page == "Dataset Upload":
            render_dataset_upload()
            return
        if source == "Upload CSV":
            if uploaded is None:
                st.info("Upload a users CSV in the sidebar to begin.")
                return
            analyzer.load_data(uploaded)
        else:
            analyzer.use_dataframe(load_synthetic(count, seed))

        analyzer.score_population()
        analyzer.compute_segment_analysis(AtRiskDefinition.CHURNED)
    except (SchemaMismatch, MalformedRecord) as e:
        st.error(f"❌ Invalid data: {e}")
        return
    except Exception as e:
        st.error(f"❌ Error during analysis: {str(e)}")
        st.exception(e)
        return

    for filter_desc in analyzer.get_analysis_summary()["active_filters"]:
        st.sidebar.write(f"• {filter_desc}")

    if page == "Overview":
        render_overview(analyzer)
    elif page == "Analytics":
        render_analytics(analyzer)
    elif page == "Prediction":
        render_prediction(analyzer, scoring)
    elif page == "What-If":
        render_what_if(analyzer, scoring)
    elif page == "Retention Actions":
        render_retention_actions(analyzer)


def render_overview(analyzer: AnalysisManager):
    summary = analyzer.get_analysis_summary()
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Total Users", f"{summary['filtered_users']:,}")
    with col2:
        st.metric("Churn Rate", f"{summary['churn_rate']:.1f}%")
    with col3:
        st.metric("Avg Churn Probability", f"{summary['average_churn_probability'] * 100:.1f}%")
    with col4:
        st.metric("High Risk Users", f"{summary['risk_distribution']['High']:,}")

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(create_risk_distribution_chart(summary['risk_distribution']), use_container_width=True)
    with col2:
        segments_df = SegmentAnalysisService.to_dataframe(analyzer.get_segments('subscription'))
        st.plotly_chart(create_segment_chart(segments_df, "Churn by Subscription"), use_container_width=True)

    st.subheader("💡 Insights")
    for insight in InsightsService().generate_insights(analyzer.get_scored_users()):
        show = {'warning': st.warning, 'success': st.success}.get(insight.kind, st.info)
        show(f"**{insight.title}**  \n{insight.description}")


def render_analytics(analyzer: AnalysisManager):
    titles = {
        'subscription': "Churn by Subscription",
        'age_group': "Churn by Age Group",
        'engagement': "Churn by Engagement Level",
        'country': "Churn by Country",
    }
    tabs = st.tabs(list(titles.values()))
    for tab, (dimension, title) in zip(tabs, titles.items()):
        with tab:
            segments = analyzer.get_segments(dimension)
            if dimension == 'country':
                segments = segments[:Config.TOP_COUNTRIES]
            segments_df = SegmentAnalysisService.to_dataframe(segments)
            st.plotly_chart(create_segment_chart(segments_df, title), use_container_width=True)
            st.dataframe(segments_df, use_container_width=True)
            st.download_button(f"Download {title} (CSV)", data=segments_df.to_csv(index=False).encode('utf-8'),
                               file_name=f"segments_{dimension}.csv")


def render_prediction(analyzer: AnalysisManager, scoring: ChurnScoringService):
    predictor = BatchPredictionService(scoring_service=scoring)
    tabs = st.tabs(["👥 Scored Users", "👤 Single User", "📤 Bulk Upload"])

    with tabs[0]:
        scored = analyzer.get_scored_users()
        st.dataframe(scored, use_container_width=True)
        filter_stats, summary_stats = analyzer.get_filter_statistics()
        if filter_stats:
            st.write("**Filter Breakdown:**")
            st.dataframe(pd.DataFrame([
                {'Filter': name, 'Rows Excluded': s['excluded'], 'Rows Included': s['included'],
                 'Excluded %': f"{s['excluded_percentage']}%"}
                for name, s in filter_stats.items()
            ]), use_container_width=True)

    with tabs[1]:
        col1, col2 = st.columns(2)
        with col1:
            fields = {
                'subscription_type': st.selectbox("Subscription", Config.SUBSCRIPTION_TYPES),
                'age': st.slider("Age", 13, 80, 28),
                'country': st.text_input("Country", "US"),
                'avg_listening_hours_per_week': st.slider("Listening hours/week", 0.0, 80.0, 15.0, 0.5),
                'login_frequency_per_week': st.slider("Logins/week", 0, 21, 5),
                'songs_skipped_per_week': st.slider("Songs skipped/week", 0, 150, 25),
                'playlists_created': st.slider("Playlists created", 0, 50, 3),
                'days_since_last_login': st.slider("Days since last login", 0, 120, 5),
                'monthly_spend_usd': st.number_input("Monthly spend ($)", min_value=0.0, value=0.0, step=0.5),
            }
        with col2:
            try:
                result = predictor.predict_single(fields)
            except MalformedRecord as e:
                for violation in e.violations:
                    st.error(str(violation))
            else:
                st.metric("Churn Probability", f"{result.churn_probability * 100:.1f}%")
                st.metric("Risk Category", result.risk_category.value)
                st.plotly_chart(create_contribution_chart(result.contributions), use_container_width=True)

    with tabs[2]:
        upload = st.file_uploader("Users CSV (churn column optional)", type=["csv"], key="bulk")
        if upload is not None:
            try:
                batch = predictor.predict_file(upload)
            except SchemaMismatch as e:
                st.error(f"Missing columns: {', '.join(e.missing_columns)}")
            except MalformedRecord as e:
                st.error(f"{len(e.violations)} invalid field(s); nothing was scored.")
                st.dataframe(pd.DataFrame([vars(v) for v in e.violations]), use_container_width=True)
            else:
                if batch.truncated:
                    st.warning(f"Scored the first {batch.processed_rows} of {batch.total_rows} rows.")
                cols = st.columns(3)
                for col, (label, value) in zip(cols, batch.risk_counts.items()):
                    col.metric(f"{label} Risk", value)
                st.dataframe(batch.predictions, use_container_width=True)
                st.download_button("Download Predictions (CSV)",
                                   data=batch.predictions.to_csv(index=False).encode('utf-8'),
                                   file_name="churn_predictions.csv")


def render_what_if(analyzer: AnalysisManager, scoring: ChurnScoringService):
    simulator = WhatIfSimulator(scoring)
    col1, col2 = st.columns(2)
    with col1:
        scenario = WhatIfScenario(
            streaming_change=st.slider("Listening hours change (%)", -50, 100, 0, 5),
            skip_rate_change=st.slider("Skip rate change (%)", -50, 50, 0, 5),
            login_frequency_change=st.slider("Login frequency change (%)", -50, 100, 0, 5),
            subscription_upgrade=st.toggle("Premium upgrade campaign"),
        )
    users = analyzer.get_scored_users()
    result = simulator.simulate(users, scenario)
    with col2:
        st.metric("Projected Churn Rate", f"{result.new_churn_rate:.1f}%",
                  delta=f"{-result.churn_reduction:.1f} pts", delta_color="inverse")
        st.metric("Users Retained", f"{result.users_retained:,}")
        st.metric("Monthly Revenue Impact", f"${result.revenue_impact:,.2f}")
    st.info(result.message)

    with st.expander("🔁 Re-score users under this scenario"):
        rescored = simulator.rescore_scenario(users, scenario)
        st.write(f"Mean churn probability: {rescored['mean_probability_before']:.1%} → "
                 f"{rescored['mean_probability_after']:.1%}")
        st.write(f"High-risk users: {rescored['high_risk_before']:,} → {rescored['high_risk_after']:,}")


def render_retention_actions(analyzer: AnalysisManager):
    service = InsightsService()
    actions_df = service.actions_to_dataframe(service.build_retention_actions(analyzer.get_scored_users()))
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("High Priority", int((actions_df['priority'] == 1).sum()))
    with col2:
        st.metric("Medium Priority", int((actions_df['priority'] == 2).sum()))
    with col3:
        st.metric("Email Actions", int((actions_df['action_type'] == 'email').sum()))
    st.dataframe(actions_df, use_container_width=True)
    st.download_button("Download Actions (CSV)", data=actions_df.to_csv(index=False).encode('utf-8'),
                       file_name="retention_actions.csv")


def render_dataset_upload():
    st.subheader("📁 Dataset Upload")
    st.write("Expected columns: " + ", ".join(f"`{c}`" for c in Config.EXPECTED_COLUMNS))
    upload = st.file_uploader("Labeled users CSV", type=["csv"], key="dataset")
    if upload is None:
        return

    processor = DataProcessor()
    try:
        users = processor.load_users(upload)
    except SchemaMismatch as e:
        for column in e.missing_columns:
            st.error(f"Missing required column: {column}")
        return
    except MalformedRecord as e:
        st.error(f"{len(e.violations)} invalid field(s) found.")
        st.dataframe(pd.DataFrame([vars(v) for v in e.violations]), use_container_width=True)
        return

    stats = processor.compute_dataset_stats(users)
    st.success(f"✅ Loaded {stats.total_rows:,} records.")
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Churn Rate", f"{stats.churn_rate:.1f}%")
    with col2:
        st.metric("Free / Premium", f"{stats.free_users:,} / {stats.premium_users:,}")
    with col3:
        st.metric("Countries", stats.countries_count)
    with col4:
        st.metric("Avg Listening", f"{stats.avg_listening_hours:.1f} h")
    st.dataframe(users.head(Config.PREVIEW_ROWS), use_container_width=True)


if __name__ == "__main__":
    main()
