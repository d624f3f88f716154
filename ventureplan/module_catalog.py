"""
Venture Plan Workbench
Module catalog — static step configuration per module type.

Each ModuleType carries its ordered step list. The table is built once at
import time; lookups for an unknown type raise ConfigurationError instead
of returning None.

Usage:
    from ventureplan.module_catalog import ModuleType, get_module_config

    cfg = get_module_config(ModuleType.VISION_PROBLEM)
    [s.step_type for s in cfg.steps]   # ['vision', 'problem', 'solution']
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ventureplan.core.exceptions import ConfigurationError


class ModuleType(str, Enum):
    VISION_PROBLEM = "vision-problem"
    MARKET_ANALYSIS = "market-analysis"
    BUSINESS_MODEL = "business-model"
    GO_TO_MARKET = "go-to-market"
    FINANCIAL_PROJECTIONS = "financial-projections"
    RISK_ASSESSMENT = "risk-assessment"
    IMPLEMENTATION_TIMELINE = "implementation-timeline"
    PITCH_DECK = "pitch-deck"


@dataclass(frozen=True)
class StepDefinition:
    step_type: str
    title: str
    description: str
    placeholder: str = ""
    expert_tips: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "step_type": self.step_type,
            "title": self.title,
            "description": self.description,
            "placeholder": self.placeholder,
            "expert_tips": list(self.expert_tips),
        }


@dataclass(frozen=True)
class ModuleDefinition:
    module_type: ModuleType
    title: str
    description: str
    order_index: int
    steps: tuple[StepDefinition, ...]

    @property
    def step_types(self) -> list[str]:
        return [s.step_type for s in self.steps]

    def to_dict(self) -> dict:
        return {
            "module_type": self.module_type.value,
            "title": self.title,
            "description": self.description,
            "order_index": self.order_index,
            "steps": [s.to_dict() for s in self.steps],
        }


def _step(step_type, title, description, placeholder, *tips):
    return StepDefinition(step_type, title, description, placeholder, tuple(tips))


_MODULES = (
    ModuleDefinition(
        ModuleType.VISION_PROBLEM,
        "Vision & Problem",
        "Define your vision and identify the problem you're solving",
        0,
        (
            _step("vision", "Vision Statement", "What future do you want to create?",
                  "In 5 years, we envision a world where...",
                  "Consider market trends in your vision", "Validate assumptions with data",
                  "Think about scalability"),
            _step("problem", "Problem Statement", "What significant problem are you solving?",
                  "Today, people struggle with...",
                  "Quantify the problem's impact", "Identify key stakeholders",
                  "Research existing solutions"),
            _step("solution", "Solution Concept", "How will you solve this problem?",
                  "We will create...",
                  "Focus on unique value proposition", "Consider technical feasibility",
                  "Think about scalability"),
        ),
    ),
    ModuleDefinition(
        ModuleType.MARKET_ANALYSIS,
        "Market Analysis",
        "Analyze your target market and competition",
        1,
        (
            _step("target-market", "Target Market", "Who are your ideal customers?",
                  "Our target market consists of...",
                  "Define demographics clearly", "Consider psychographic factors",
                  "Identify market size"),
            _step("market-size", "Market Size", "What is your total addressable market (TAM)?",
                  "The total market size is...",
                  "Break down TAM, SAM, and SOM", "Use credible market research",
                  "Consider growth trends"),
            _step("competitors", "Competitor Analysis", "Who are your main competitors?",
                  "Our main competitors are...",
                  "Analyze direct and indirect competitors", "Identify competitive advantages",
                  "Study market leaders"),
            _step("market-trends", "Market Trends", "What are the key market trends?",
                  "The key trends shaping our market are...",
                  "Consider technological trends", "Analyze regulatory changes",
                  "Study consumer behavior shifts"),
        ),
    ),
    ModuleDefinition(
        ModuleType.BUSINESS_MODEL,
        "Business Model",
        "Define how your business will create and capture value",
        2,
        (
            _step("revenue-model", "Revenue Model", "How will you generate revenue?",
                  "Our revenue model consists of...",
                  "Consider multiple revenue streams", "Analyze pricing strategies",
                  "Think about scalability"),
            _step("customer-segments", "Customer Segments", "Who are your key customer segments?",
                  "Our key customer segments are...",
                  "Define clear segments", "Consider segment size",
                  "Analyze willingness to pay"),
            _step("value-proposition", "Value Proposition", "What unique value do you offer?",
                  "Our unique value proposition is...",
                  "Focus on customer benefits", "Differentiate from competitors",
                  "Make it measurable"),
            _step("channels", "Distribution Channels", "How will you reach your customers?",
                  "We will reach our customers through...",
                  "Consider direct and indirect channels", "Analyze channel costs",
                  "Think about scalability"),
        ),
    ),
    ModuleDefinition(
        ModuleType.GO_TO_MARKET,
        "Go-to-Market Strategy",
        "Plan how you'll reach and acquire customers",
        3,
        (
            _step("target-audience", "Target Audience", "Who are your early adopters?",
                  "Our initial target audience is...",
                  "Define early adopter characteristics", "Identify pain points",
                  "Consider acquisition channels"),
            _step("positioning", "Market Positioning", "How will you position your product?",
                  "Our market positioning is...",
                  "Define unique selling points", "Analyze competitor positioning",
                  "Consider brand perception"),
            _step("acquisition", "Customer Acquisition", "How will you acquire customers?",
                  "Our customer acquisition strategy includes...",
                  "Calculate acquisition costs", "Define marketing channels",
                  "Plan growth strategies"),
        ),
    ),
    ModuleDefinition(
        ModuleType.FINANCIAL_PROJECTIONS,
        "Financial Projections",
        "Forecast your financial performance and requirements",
        4,
        (
            _step("revenue", "Revenue Projections", "What are your revenue projections?",
                  "Our projected revenue growth is...",
                  "Use realistic growth rates", "Consider market size", "Factor in seasonality"),
            _step("costs", "Cost Structure", "What are your main costs?",
                  "Our main cost categories are...",
                  "Include fixed and variable costs", "Consider scaling costs",
                  "Plan for contingencies"),
            _step("funding", "Funding Requirements", "What funding do you need?",
                  "Our funding requirements are...",
                  "Calculate runway needed", "Consider funding sources",
                  "Plan funding milestones"),
        ),
    ),
    ModuleDefinition(
        ModuleType.RISK_ASSESSMENT,
        "Risk Assessment",
        "Identify and plan for potential risks and challenges",
        5,
        (
            _step("market-risks", "Market Risks", "What market risks do you face?",
                  "The key market risks are...",
                  "Consider market changes", "Analyze competition risks",
                  "Evaluate market timing"),
            _step("operational-risks", "Operational Risks",
                  "What operational challenges might you face?",
                  "Our operational risks include...",
                  "Assess supply chain risks", "Consider scaling challenges",
                  "Plan for contingencies"),
            _step("mitigation", "Risk Mitigation", "How will you address these risks?",
                  "Our risk mitigation strategies are...",
                  "Develop contingency plans", "Consider insurance options",
                  "Plan risk monitoring"),
        ),
    ),
    ModuleDefinition(
        ModuleType.IMPLEMENTATION_TIMELINE,
        "Implementation Timeline",
        "Create a roadmap for executing your plan",
        6,
        (
            _step("milestones", "Key Milestones", "What are your key milestones?",
                  "Our key milestones are...",
                  "Set realistic timelines", "Define clear objectives",
                  "Include measurable outcomes"),
            _step("resources", "Resource Requirements", "What resources will you need?",
                  "The resources we need include...",
                  "Consider human resources", "Plan for equipment needs",
                  "Budget for resources"),
            _step("dependencies", "Dependencies", "What are the critical dependencies?",
                  "Our critical dependencies are...",
                  "Identify critical path", "Plan for bottlenecks", "Consider external factors"),
        ),
    ),
    ModuleDefinition(
        ModuleType.PITCH_DECK,
        "Pitch Deck",
        "Create a compelling presentation of your business",
        7,
        (
            _step("story", "Story & Vision", "What's your compelling story?",
                  "Our story begins with...",
                  "Make it memorable", "Focus on the problem", "Show your passion"),
            _step("highlights", "Key Highlights", "What are your key achievements and metrics?",
                  "Our key highlights include...",
                  "Focus on traction", "Show key metrics", "Highlight team strengths"),
            _step("ask", "The Ask", "What are you asking for?",
                  "We are seeking...",
                  "Be specific about needs", "Show use of funds", "Define clear milestones"),
        ),
    ),
)

MODULES_CONFIG: dict[ModuleType, ModuleDefinition] = {m.module_type: m for m in _MODULES}
_ORDERED = sorted(_MODULES, key=lambda m: m.order_index)


def parse_module_type(value) -> ModuleType:
    """Coerce a string to ModuleType; unknown values raise ConfigurationError."""
    if isinstance(value, ModuleType):
        return value
    try:
        return ModuleType(value)
    except ValueError:
        raise ConfigurationError(f"No step configuration for module type {value!r}") from None


def get_module_config(module_type) -> ModuleDefinition:
    """Return the static definition of a module type."""
    mtype = parse_module_type(module_type)
    config = MODULES_CONFIG.get(mtype)
    if config is None:
        raise ConfigurationError(f"No step configuration for module type {mtype.value!r}")
    return config


def get_step_config(module_type, step_type: str) -> StepDefinition:
    config = get_module_config(module_type)
    for step in config.steps:
        if step.step_type == step_type:
            return step
    raise ConfigurationError(
        f"Step {step_type!r} is not configured for module type {config.module_type.value!r}"
    )


def get_next_module(module_type) -> ModuleDefinition | None:
    """The module that follows ``module_type`` in the guided sequence."""
    idx = _ORDERED.index(get_module_config(module_type))
    return _ORDERED[idx + 1] if idx + 1 < len(_ORDERED) else None


def get_previous_module(module_type) -> ModuleDefinition | None:
    idx = _ORDERED.index(get_module_config(module_type))
    return _ORDERED[idx - 1] if idx > 0 else None


def list_module_types() -> list[ModuleDefinition]:
    return list(_ORDERED)
