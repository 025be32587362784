"""Supplier rejection taxonomy and retryability rules.

Categories, subcategories and priorities are shared between the SMS parser,
the state applier (which stores structured rejection metadata) and the
reassignment workflow that decides whether another supplier should be tried.
"""

from dataclasses import dataclass
from typing import Optional

from kisheka.domain.enums import RejectionPriority


@dataclass(frozen=True)
class RejectionReason:
    """One top-level rejection category."""
    id: str
    label: str
    description: str
    priority: RejectionPriority
    subcategories: dict[str, str]


@dataclass(frozen=True)
class RetryabilityAssessment:
    """Whether a rejected order is worth re-sending, and what to try next."""
    retryable: bool
    recommendation: str
    priority: Optional[RejectionPriority] = None
    confidence: float = 0.0
    reason_category: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "retryable": self.retryable,
            "recommendation": self.recommendation,
            "priority": self.priority.value if self.priority else None,
            "confidence": self.confidence,
            "reason_category": self.reason_category,
        }


P = RejectionPriority

REJECTION_REASONS: dict[str, RejectionReason] = {
    "price_too_high": RejectionReason(
        id="price_too_high",
        label="Price Too High",
        description="Supplier rejects due to pricing concerns",
        priority=P.HIGH,
        subcategories={
            "MARKET_RATES": "market_rates_higher",
            "MATERIAL_COSTS": "material_costs_increased",
            "LABOR_COSTS": "labor_costs_high",
            "OVERHEAD": "overhead_costs",
            "PROFIT_MARGIN": "insufficient_profit_margin",
            "CURRENCY_FLUCTUATION": "currency_fluctuation",
        },
    ),
    "unavailable": RejectionReason(
        id="unavailable",
        label="Material Unavailable",
        description="Supplier cannot fulfill due to material availability",
        priority=P.CRITICAL,
        subcategories={
            "OUT_OF_STOCK": "out_of_stock",
            "DISCONTINUED": "material_discontinued",
            "SEASONAL_UNAVAILABLE": "seasonal_unavailable",
            "SUPPLIER_SHORTAGE": "supplier_shortage",
            "MANUFACTURING_DELAY": "manufacturing_delay",
            "SHIPPING_CONSTRAINTS": "shipping_constraints",
        },
    ),
    "timeline": RejectionReason(
        id="timeline",
        label="Timeline Issues",
        description="Supplier cannot meet required delivery schedule",
        priority=P.MEDIUM,
        subcategories={
            "DELIVERY_DATE": "delivery_date_too_soon",
            "PRODUCTION_TIME": "insufficient_production_time",
            "LOGISTICS_DELAY": "logistics_delay",
            "WEATHER_CONCERNS": "weather_related_delays",
            "WORKLOAD": "current_workload_too_high",
            "STAFF_SHORTAGE": "staff_shortage",
        },
    ),
    "specifications": RejectionReason(
        id="specifications",
        label="Specification Issues",
        description="Supplier cannot meet material specifications",
        priority=P.HIGH,
        subcategories={
            "QUALITY_STANDARDS": "cannot_meet_quality_standards",
            "TECHNICAL_SPECS": "technical_specifications_unmet",
            "MATERIAL_GRADE": "material_grade_unavailable",
            "CUSTOM_REQUIREMENTS": "custom_requirements_impossible",
            "CERTIFICATION": "certification_requirements",
            "TESTING": "testing_requirements",
        },
    ),
    "quantity": RejectionReason(
        id="quantity",
        label="Quantity Issues",
        description="Supplier cannot fulfill required quantity",
        priority=P.MEDIUM,
        subcategories={
            "MINIMUM_ORDER": "below_minimum_order_quantity",
            "MAXIMUM_CAPACITY": "exceeds_production_capacity",
            "BATCH_SIZE": "batch_size_constraints",
            "STORAGE_LIMITS": "storage_limitations",
            "PARTIAL_FULFILLMENT": "can_only_partial_fulfill",
        },
    ),
    "business_policy": RejectionReason(
        id="business_policy",
        label="Business Policy",
        description="Supplier rejects due to internal business policies",
        priority=P.LOW,
        subcategories={
            "PAYMENT_TERMS": "unacceptable_payment_terms",
            "CONTRACT_TERMS": "contract_terms_unacceptable",
            "INSURANCE": "insurance_requirements",
            "LICENSING": "licensing_restrictions",
            "GEOGRAPHIC_LIMITS": "geographic_service_limits",
            "CLIENT_RESTRICTIONS": "client_specific_restrictions",
        },
    ),
    "external_factors": RejectionReason(
        id="external_factors",
        label="External Factors",
        description="Rejection due to factors outside supplier control",
        priority=P.VARIABLE,
        subcategories={
            "REGULATORY": "regulatory_changes",
            "MARKET_CONDITIONS": "market_volatility",
            "FORCE_MAJEURE": "force_majeure",
            "TRANSPORTATION": "transportation_issues",
            "SUPPLIER_CHAIN": "supply_chain_disruption",
            "ECONOMIC": "economic_conditions",
        },
    ),
    "other": RejectionReason(
        id="other",
        label="Other Reasons",
        description="Custom or unspecified rejection reasons",
        priority=P.LOW,
        subcategories={
            "CUSTOM": "custom_reason",
            "NOT_SPECIFIED": "not_specified",
            "PREFERENCE": "supplier_preference",
            "RELATIONSHIP": "business_relationship_issues",
        },
    ),
}

# Keyword buckets scanned in order by the SMS parser. The first category whose
# keywords appear wins; subcategories are then searched inside that bucket.
REJECTION_KEYWORDS: dict[str, dict] = {
    "price_too_high": {
        "keywords": ["PRICE", "COST", "EXPENSIVE", "TOO HIGH", "CHEAPER", "LOWER PRICE", "BUDGET", "BEI"],
        "subcategories": {
            "market_rates_higher": ["MARKET", "RATES"],
            "material_costs_increased": ["MATERIAL COST", "RAW MATERIAL"],
            "labor_costs_high": ["LABOR", "LABOUR", "WORKER", "MANPOWER"],
            "overhead_costs": ["OVERHEAD", "OPERATIONAL"],
            "insufficient_profit_margin": ["PROFIT", "MARGIN"],
            "currency_fluctuation": ["CURRENCY", "EXCHANGE"],
        },
    },
    "unavailable": {
        "keywords": [
            "UNAVAILABLE", "OUT OF STOCK", "NO STOCK", "NOT AVAILABLE", "DONT HAVE",
            "DON'T HAVE", "CANT GET", "CAN'T GET", "DISCONTINUED", "HAKUNA",
        ],
        "subcategories": {
            "out_of_stock": ["OUT OF STOCK", "NO STOCK", "STOCK"],
            "material_discontinued": ["DISCONTINUED", "NO LONGER"],
            "seasonal_unavailable": ["SEASONAL", "SEASON"],
            "supplier_shortage": ["SHORTAGE", "SHORT"],
            "manufacturing_delay": ["MANUFACTURING", "PRODUCTION"],
            "shipping_constraints": ["SHIPPING", "TRANSPORT", "LOGISTICS"],
        },
    },
    "timeline": {
        "keywords": ["TIME", "DELIVERY", "DEADLINE", "TOO SOON", "TOO FAST", "LATE", "DELAY", "SCHEDULE", "RUSH", "MUDA"],
        "subcategories": {
            "delivery_date_too_soon": ["TOO SOON", "TOO FAST", "RUSH", "URGENT"],
            "insufficient_production_time": ["PRODUCTION TIME", "MAKE TIME"],
            "logistics_delay": ["LOGISTICS", "TRANSPORT", "SHIPPING"],
            "weather_related_delays": ["WEATHER", "RAIN", "STORM"],
            "current_workload_too_high": ["WORKLOAD", "BUSY", "FULL"],
            "staff_shortage": ["STAFF", "WORKER", "MANPOWER"],
        },
    },
    "specifications": {
        "keywords": ["SPECIFICATION", "SPEC", "QUALITY", "STANDARD", "GRADE", "CERTIFICATION", "TESTING", "REQUIREMENT"],
        "subcategories": {
            "cannot_meet_quality_standards": ["QUALITY", "STANDARD"],
            "technical_specifications_unmet": ["TECHNICAL", "SPEC"],
            "material_grade_unavailable": ["GRADE", "TYPE"],
            "custom_requirements_impossible": ["CUSTOM", "SPECIAL"],
            "certification_requirements": ["CERTIFICATION", "CERTIFIED"],
            "testing_requirements": ["TESTING", "TEST"],
        },
    },
    "quantity": {
        "keywords": ["QUANTITY", "QTY", "AMOUNT", "TOO MUCH", "TOO MANY", "MINIMUM", "MAXIMUM", "CAPACITY", "KIASI"],
        "subcategories": {
            "below_minimum_order_quantity": ["MINIMUM", "MIN"],
            "exceeds_production_capacity": ["CAPACITY", "MAXIMUM", "MAX"],
            "batch_size_constraints": ["BATCH", "BULK"],
            "storage_limitations": ["STORAGE", "SPACE"],
            "can_only_partial_fulfill": ["PARTIAL", "SOME", "ONLY"],
        },
    },
    "business_policy": {
        "keywords": ["POLICY", "TERMS", "CONTRACT", "PAYMENT", "INSURANCE", "LICENSE", "GEOGRAPHIC"],
        "subcategories": {
            "unacceptable_payment_terms": ["PAYMENT", "TERMS"],
            "contract_terms_unacceptable": ["CONTRACT", "AGREEMENT"],
            "insurance_requirements": ["INSURANCE"],
            "licensing_restrictions": ["LICENSE", "PERMIT"],
            "geographic_service_limits": ["GEOGRAPHIC", "AREA", "LOCATION"],
            "client_specific_restrictions": ["CLIENT", "CUSTOMER"],
        },
    },
    "external_factors": {
        "keywords": ["REGULATORY", "MARKET", "FORCE MAJEURE", "TRANSPORTATION", "SUPPLY CHAIN", "ECONOMIC"],
        "subcategories": {
            "regulatory_changes": ["REGULATORY", "REGULATION"],
            "market_volatility": ["MARKET", "VOLATILITY"],
            "force_majeure": ["FORCE MAJEURE", "DISASTER"],
            "transportation_issues": ["TRANSPORTATION", "TRANSPORT"],
            "supply_chain_disruption": ["SUPPLY CHAIN", "CHAIN"],
            "economic_conditions": ["ECONOMIC", "ECONOMY"],
        },
    },
}

# reason_id -> (retryable, recommendation, confidence)
RETRY_RULES: dict[str, tuple[bool, str, float]] = {
    "price_too_high": (True, "Consider price negotiation or alternative specifications", 0.7),
    "unavailable": (False, "Find alternative supplier or material", 0.9),
    "timeline": (True, "Adjust delivery date or split order", 0.6),
    "specifications": (True, "Review specifications or find specialized supplier", 0.5),
    "quantity": (True, "Adjust quantity or split into multiple orders", 0.8),
    "business_policy": (False, "Respect supplier policies or find alternative", 0.8),
    "external_factors": (True, "Monitor conditions and retry when resolved", 0.4),
    "other": (True, "Contact supplier for clarification", 0.3),
}

PRIORITY_VALUES: dict[RejectionPriority, int] = {
    P.CRITICAL: 5,
    P.HIGH: 4,
    P.MEDIUM: 3,
    P.LOW: 2,
    P.VARIABLE: 1,
}


def get_rejection_reason(reason_id: Optional[str]) -> Optional[RejectionReason]:
    if not reason_id:
        return None
    return REJECTION_REASONS.get(reason_id)


def get_subcategory_label(reason_id: str, subcategory_id: Optional[str]) -> Optional[str]:
    """Title-case label for a subcategory value, or None if it is not in the bucket."""
    reason = get_rejection_reason(reason_id)
    if reason is None or subcategory_id not in reason.subcategories.values():
        return None
    return " ".join(word.capitalize() for word in subcategory_id.split("_"))


def assess_retryability(reason_id: Optional[str], subcategory_id: Optional[str] = None) -> RetryabilityAssessment:
    """Decide whether a rejected order should be re-sent or reassigned.

    Unknown reasons are never retryable and always require manual review.
    The subcategory is accepted for future per-subcategory rules; today the
    decision is made on the category alone.
    """
    reason = get_rejection_reason(reason_id)
    if reason is None:
        return RetryabilityAssessment(
            retryable=False,
            recommendation="Unknown reason - manual review required",
        )

    rule = RETRY_RULES.get(reason.id)
    if rule is None:
        return RetryabilityAssessment(retryable=False, recommendation="Manual review required")

    retryable, recommendation, confidence = rule
    return RetryabilityAssessment(
        retryable=retryable,
        recommendation=recommendation,
        priority=reason.priority,
        confidence=confidence,
        reason_category=reason.label,
    )


def get_priority_value(priority: Optional[RejectionPriority | str]) -> int:
    """Numeric priority (1-5) for sorting and analytics."""
    try:
        return PRIORITY_VALUES[RejectionPriority(priority)]
    except (ValueError, KeyError):
        return 1


def format_rejection_reason(reason_id: Optional[str], subcategory_id: Optional[str] = None) -> str:
    """Human-readable "Category: Subcategory" string."""
    reason = get_rejection_reason(reason_id)
    if reason is None:
        return "Unknown Reason"
    subcategory_label = get_subcategory_label(reason.id, subcategory_id)
    return f"{reason.label}: {subcategory_label}" if subcategory_label else reason.label
