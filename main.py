from analysis_manager import AnalysisManager
from filters import SubscriptionFilter
from models import AtRiskDefinition, SubscriptionType

# Initialize and load a seeded synthetic population
analyzer = AnalysisManager(filters=[SubscriptionFilter(SubscriptionType.FREE)])
analyzer = analyzer.generate_data(count=2000, seed=7)

analyzer.score_population()
analyzer.compute_segment_analysis(at_risk=AtRiskDefinition.CHURNED)

# Get risk metrics
summary = analyzer.get_analysis_summary()
age_segments = analyzer.get_segments('age_group')
