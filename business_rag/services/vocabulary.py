# =============================================================================
# Vocabulary — Static Term & Framework Dictionaries
# =============================================================================
#
# Keyword and phrase tables shared by the classifier, the expander and the
# ranker. Nothing in here executes logic; the tables are plain data so they
# can be reviewed (and tuned) without reading scoring code.
#
# TABLES:
#   INTENT_PATTERNS      — weighted phrase groups per intent
#   URGENCY_KEYWORDS     — keyword → urgency tag (checked critical first)
#   INDUSTRY_KEYWORDS    — industry detection
#   STAGE_KEYWORDS       — lifecycle stage detection from question text
#   SCENARIO_KEYWORDS    — business scenario detection (also used by ranker)
#   FRAMEWORKS           — framework signatures + expansion terminology
#   METRICS              — financial metric variants + expansion vocabulary
#
# DESIGN DECISION: All phrases are lowercase and matched on word
# boundaries by the classifier. Multi-word phrases are preferred over
# single words wherever a single word would be ambiguous.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from business_rag.models.domain import (
    Framework,
    Industry,
    Intent,
    LifecycleStage,
    MetricCategory,
    Scenario,
    Urgency,
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternGroup:
    """Phrases that all contribute the same weight to one intent."""

    phrases: tuple[str, ...]
    weight: float


@dataclass(frozen=True)
class FrameworkSignature:
    """
    How a framework shows up in a question, and what to search for
    once it has been detected.
    """

    display_name: str
    direct_mentions: tuple[str, ...]
    key_components: tuple[str, ...]
    contextual_indicators: tuple[str, ...]
    expansion_terms: tuple[str, ...]


@dataclass(frozen=True)
class MetricDefinition:
    display_name: str
    category: MetricCategory
    variants: tuple[str, ...]
    calculation_terms: tuple[str, ...]
    optimization_terms: tuple[str, ...]
    benchmark_terms: tuple[str, ...]


# ---------------------------------------------------------------------------
# Intent Patterns
# ---------------------------------------------------------------------------
# score(intent) = Σ group.weight × occurrences(phrase) over all phrases.
# ---------------------------------------------------------------------------

INTENT_PATTERNS: dict[Intent, tuple[PatternGroup, ...]] = {
    Intent.LEARNING: (
        PatternGroup(("what is", "explain", "define", "understand", "concept of"), 3.0),
        PatternGroup(("how does", "why does", "meaning of", "definition"), 2.5),
        PatternGroup(("learn about", "study", "knowledge", "theory"), 2.0),
    ),
    Intent.IMPLEMENTATION: (
        PatternGroup(("how to", "implement", "execute", "apply", "deploy"), 4.0),
        PatternGroup(("set up", "create", "build", "establish", "launch"), 3.5),
        PatternGroup(("step by step", "guide", "tutorial", "process"), 3.0),
        PatternGroup(("how do i", "how can i", "calculate", "compute", "formula"), 3.0),
    ),
    Intent.TROUBLESHOOTING: (
        PatternGroup(("fix", "solve", "problem", "issue", "not working"), 4.0),
        PatternGroup(("failing", "broken", "error", "wrong", "trouble"), 3.5),
        PatternGroup(("debug", "resolve", "repair", "correct"), 3.0),
    ),
    Intent.OPTIMIZATION: (
        PatternGroup(("improve", "optimize", "enhance", "increase", "boost"), 3.5),
        PatternGroup(("better", "faster", "more efficient", "maximize"), 3.0),
        PatternGroup(("scale", "grow", "expand", "upgrade"), 2.5),
    ),
    Intent.BENCHMARKING: (
        PatternGroup(("benchmark", "compare", "industry standard", "best practice"), 4.0),
        PatternGroup(("average", "typical", "normal", "standard"), 3.0),
        PatternGroup(("competitive", "market rate", "peers"), 2.5),
    ),
    Intent.PLANNING: (
        PatternGroup(("plan", "planning", "strategy", "roadmap", "forecast"), 3.5),
        PatternGroup(("prepare", "next quarter", "next year", "budget", "goals"), 3.0),
        PatternGroup(("long term", "vision", "milestones", "priorities"), 2.5),
    ),
    Intent.RESEARCH: (
        PatternGroup(("research", "statistics", "data on", "studies", "trends"), 3.0),
        PatternGroup(("case study", "examples of", "evidence", "insights"), 2.5),
        PatternGroup(("who", "history of", "origin"), 1.5),
    ),
}


# ---------------------------------------------------------------------------
# Urgency, Industry, Stage, Scenario Keywords
# ---------------------------------------------------------------------------

# Checked in this order; the first tag with any keyword present wins.
URGENCY_KEYWORDS: tuple[tuple[Urgency, tuple[str, ...]], ...] = (
    (Urgency.CRITICAL, ("urgent", "asap", "immediately", "emergency", "critical", "now")),
    (Urgency.HIGH, ("quickly", "fast", "soon", "deadline")),
    (Urgency.MEDIUM, ("when", "timeline")),
)

INDUSTRY_KEYWORDS: dict[Industry, tuple[str, ...]] = {
    Industry.SAAS: (
        "saas", "software", "subscription", "mrr", "arr", "churn",
        "retention", "platform",
    ),
    Industry.FITNESS: (
        "gym", "fitness", "personal trainer", "membership", "workout",
        "training", "exercise",
    ),
    Industry.ECOMMERCE: (
        "ecommerce", "e-commerce", "online store", "shopify",
        "product sales", "inventory", "shipping",
    ),
    Industry.PROFESSIONAL_SERVICES: (
        "consulting", "agency", "billable hours", "client work", "professional",
    ),
    Industry.REAL_ESTATE: (
        "real estate", "property", "listings", "realtor", "commission", "closing costs",
    ),
}

STAGE_KEYWORDS: dict[LifecycleStage, tuple[str, ...]] = {
    LifecycleStage.IDEATION: (
        "idea", "ideation", "pre-revenue", "side hustle", "validate my idea",
    ),
    LifecycleStage.STARTUP: (
        "startup", "start-up", "early stage", "mvp", "product market fit",
        "bootstrapping", "seed funding", "just started",
    ),
    LifecycleStage.EARLY_SCALING: (
        "first hire", "first employees", "early traction", "first customers",
    ),
    LifecycleStage.SCALING: (
        "scaling", "expanding", "hiring", "systems", "processes",
    ),
    LifecycleStage.GROWTH: (
        "growth phase", "expansion", "market expansion", "geographic expansion",
    ),
    LifecycleStage.ENTERPRISE: (
        "enterprise", "large scale", "corporate", "established", "mature business",
    ),
    LifecycleStage.EXIT_PREP: (
        "exit", "sell my business", "acquisition offer", "valuation multiple",
    ),
}

SCENARIO_KEYWORDS: dict[Scenario, tuple[str, ...]] = {
    Scenario.LAUNCHING_NEW_PRODUCT: (
        "launch", "new product", "product launch", "go to market",
    ),
    Scenario.SCALING_TEAM: ("hiring", "hire", "recruit", "team"),
    Scenario.IMPROVING_CONVERSION: (
        "conversion", "conversion rate", "close rate", "closing rate",
    ),
    Scenario.RAISING_CAPITAL: (
        "funding", "investors", "raise capital", "fundraising", "venture capital",
    ),
    Scenario.EXPANDING_MARKETS: (
        "new market", "market expansion", "international", "geographic expansion",
    ),
    Scenario.OPTIMIZING_COSTS: (
        "reduce costs", "cut costs", "lower costs", "cost cutting", "expenses",
    ),
    Scenario.BUILDING_SYSTEMS: (
        "systems", "processes", "sop", "automation", "standard operating procedure",
    ),
    Scenario.CRISIS_MANAGEMENT: (
        "crisis", "cash crunch", "emergency", "layoffs", "losing money",
    ),
    Scenario.COMPETITIVE_RESPONSE: (
        "competitor", "competitors", "competition", "undercut",
    ),
    Scenario.EXIT_PREPARATION: (
        "exit", "exit strategy", "sell my business", "acquisition offer",
    ),
}

# Words that push scope to strategic / operational
STRATEGIC_SCOPE_KEYWORDS: tuple[str, ...] = ("strategy", "strategic", "plan", "vision")
OPERATIONAL_SCOPE_KEYWORDS: tuple[str, ...] = ("process", "system", "systems", "workflow")


# ---------------------------------------------------------------------------
# Framework Signatures
# ---------------------------------------------------------------------------

FRAMEWORKS: dict[Framework, FrameworkSignature] = {
    Framework.GRAND_SLAM_OFFERS: FrameworkSignature(
        display_name="Grand Slam Offer",
        direct_mentions=("grand slam offer", "grand slam offers", "gso"),
        key_components=(
            "value equation", "dream outcome", "perceived likelihood",
            "time delay", "effort",
        ),
        contextual_indicators=(
            "irresistible offer", "value proposition", "offer enhancement", "guarantee",
        ),
        expansion_terms=(
            "dream outcome", "perceived likelihood", "time delay",
            "effort sacrifice", "value proposition", "offer enhancement",
        ),
    ),
    Framework.CORE_FOUR: FrameworkSignature(
        display_name="Core Four",
        direct_mentions=("core four", "core 4"),
        key_components=("warm outreach", "cold outreach", "warm content", "cold content"),
        contextual_indicators=(
            "lead generation", "customer acquisition", "marketing channels", "paid ads",
        ),
        expansion_terms=(
            "warm outreach", "cold outreach", "warm content", "cold content",
            "lead generation",
        ),
    ),
    Framework.VALUE_EQUATION: FrameworkSignature(
        display_name="Value Equation",
        direct_mentions=("value equation",),
        key_components=(
            "dream outcome", "perceived likelihood", "time delay", "effort and sacrifice",
        ),
        contextual_indicators=("perceived value", "value creation", "pricing power"),
        expansion_terms=(
            "dream outcome", "likelihood of achievement", "time delay",
            "effort and sacrifice",
        ),
    ),
    Framework.CLOSER_FRAMEWORK: FrameworkSignature(
        display_name="CLOSER Framework",
        direct_mentions=("closer framework", "closer method", "closer"),
        key_components=(
            "clarify", "label", "overview", "sell", "explain away", "reinforce",
        ),
        contextual_indicators=(
            "sales process", "closing", "objection handling", "sales conversation",
        ),
        expansion_terms=(
            "objection handling", "sales call structure", "closing techniques",
            "sales conversation",
        ),
    ),
    Framework.LTV_CAC_OPTIMIZATION: FrameworkSignature(
        display_name="LTV/CAC Optimization",
        direct_mentions=("ltv cac optimization", "ltv/cac optimization", "unit economics"),
        key_components=(
            "lifetime value", "acquisition cost", "payback period", "retention rate",
        ),
        contextual_indicators=("ltv", "cac", "churn", "customer value"),
        expansion_terms=(
            "lifetime value", "acquisition cost", "payback period", "retention rate",
        ),
    ),
    Framework.LEAD_MAGNETS: FrameworkSignature(
        display_name="Lead Magnets",
        direct_mentions=("lead magnet", "lead magnets"),
        key_components=("free offer", "opt in", "giveaway", "free trial"),
        contextual_indicators=("email list", "lead capture", "funnel"),
        expansion_terms=("free value offer", "lead capture", "opt in page"),
    ),
    Framework.PRICING_PSYCHOLOGY: FrameworkSignature(
        display_name="Pricing Psychology",
        direct_mentions=("pricing psychology", "price anchoring"),
        key_components=("anchoring", "premium pricing", "price increase", "payment plans"),
        contextual_indicators=("pricing", "raise prices", "discount"),
        expansion_terms=("price anchoring", "premium positioning", "price elasticity"),
    ),
    Framework.CASH_FLOW_MANAGEMENT: FrameworkSignature(
        display_name="Cash Flow Management",
        direct_mentions=("cash flow management",),
        key_components=("cash flow", "runway", "upfront payment", "payment terms"),
        contextual_indicators=("cash", "burn rate", "working capital"),
        expansion_terms=("cash conversion cycle", "upfront collection", "runway planning"),
    ),
    Framework.TEAM_BUILDING: FrameworkSignature(
        display_name="Team Building",
        direct_mentions=("team building",),
        key_components=("hiring", "onboarding", "delegation", "culture"),
        contextual_indicators=("team", "employees", "managers", "recruit"),
        expansion_terms=("hiring process", "role scorecards", "delegation framework"),
    ),
}


# ---------------------------------------------------------------------------
# Financial Metrics
# ---------------------------------------------------------------------------
# Keyed by canonical metric name; the name is also the tag string used on
# corpus passages.
# ---------------------------------------------------------------------------

METRICS: dict[str, MetricDefinition] = {
    "ltv": MetricDefinition(
        display_name="Customer Lifetime Value",
        category=MetricCategory.RETENTION,
        variants=("ltv", "lifetime value", "customer lifetime value", "clv", "customer value"),
        calculation_terms=("calculate ltv", "ltv formula", "lifetime value calculation"),
        optimization_terms=("increase ltv", "improve lifetime value", "maximize customer value"),
        benchmark_terms=("ltv benchmark", "industry average ltv", "typical lifetime value"),
    ),
    "cac": MetricDefinition(
        display_name="Customer Acquisition Cost",
        category=MetricCategory.COST,
        variants=("cac", "customer acquisition cost", "acquisition cost", "cost per customer"),
        calculation_terms=("calculate cac", "cac formula", "acquisition cost calculation"),
        optimization_terms=("reduce cac", "lower acquisition cost", "optimize cac"),
        benchmark_terms=("cac benchmark", "industry cac rates", "average acquisition cost"),
    ),
    "ltv_cac_ratio": MetricDefinition(
        display_name="LTV/CAC Ratio",
        category=MetricCategory.EFFICIENCY,
        variants=(
            "ltv/cac", "ltv:cac", "ltv to cac ratio", "ltv cac ratio",
            "lifetime value to acquisition cost ratio",
        ),
        calculation_terms=("ltv/cac calculation", "ratio formula", "unit economics math"),
        optimization_terms=("improve ltv/cac", "optimize ratio", "better unit economics"),
        benchmark_terms=("3:1 ratio", "healthy ltv/cac", "benchmark ratio"),
    ),
    "mrr": MetricDefinition(
        display_name="Monthly Recurring Revenue",
        category=MetricCategory.REVENUE,
        variants=("mrr", "monthly recurring revenue", "monthly revenue", "recurring revenue"),
        calculation_terms=("calculate mrr", "mrr formula", "recurring revenue calculation"),
        optimization_terms=("grow mrr", "increase recurring revenue", "expansion revenue"),
        benchmark_terms=("mrr growth benchmark", "typical mrr growth", "saas revenue benchmarks"),
    ),
    "churn_rate": MetricDefinition(
        display_name="Churn Rate",
        category=MetricCategory.RETENTION,
        variants=("churn", "churn rate", "customer churn", "cancellation rate"),
        calculation_terms=("calculate churn rate", "churn formula", "monthly churn calculation"),
        optimization_terms=("reduce churn", "improve retention", "retention strategies"),
        benchmark_terms=("average churn rate", "churn benchmark", "acceptable churn"),
    ),
    "gross_margin": MetricDefinition(
        display_name="Gross Margin",
        category=MetricCategory.PROFITABILITY,
        variants=("gross margin", "gross profit margin", "profit margin", "margins"),
        calculation_terms=("gross margin formula", "calculate gross margin", "cost of goods sold"),
        optimization_terms=("improve margins", "increase gross margin", "reduce cogs"),
        benchmark_terms=("industry gross margin", "typical margins", "margin benchmark"),
    ),
    "payback_period": MetricDefinition(
        display_name="CAC Payback Period",
        category=MetricCategory.EFFICIENCY,
        variants=("payback period", "cac payback", "months to recover cac"),
        calculation_terms=("payback period formula", "calculate payback", "months to payback"),
        optimization_terms=("shorten payback", "faster payback", "upfront cash collection"),
        benchmark_terms=("payback benchmark", "typical payback period", "12 month payback"),
    ),
    "burn_rate": MetricDefinition(
        display_name="Burn Rate",
        category=MetricCategory.CASH_FLOW,
        variants=("burn rate", "cash burn", "runway"),
        calculation_terms=("calculate burn rate", "runway calculation", "net burn formula"),
        optimization_terms=("reduce burn", "extend runway", "cut burn rate"),
        benchmark_terms=("typical burn multiple", "burn rate benchmark", "months of runway"),
    ),
    "revenue_growth": MetricDefinition(
        display_name="Revenue Growth Rate",
        category=MetricCategory.GROWTH,
        variants=(
            "revenue growth", "growth rate", "month over month growth",
            "year over year growth",
        ),
        calculation_terms=("growth rate formula", "calculate growth rate", "compound growth"),
        optimization_terms=("accelerate growth", "increase revenue growth", "growth levers"),
        benchmark_terms=("growth rate benchmark", "typical growth rate", "t2d3"),
    ),
    "valuation_multiple": MetricDefinition(
        display_name="Valuation Multiple",
        category=MetricCategory.VALUATION,
        variants=("valuation", "valuation multiple", "revenue multiple", "ebitda multiple"),
        calculation_terms=("valuation formula", "calculate valuation", "ebitda times multiple"),
        optimization_terms=("increase valuation", "improve multiple", "valuation drivers"),
        benchmark_terms=("industry multiples", "typical valuation multiple", "comparable exits"),
    ),
}
