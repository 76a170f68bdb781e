"""
Parcel Brief Compiler

Renders a parcel's feature map into the property brief the persona sees
through the `parcel_brief` dynamic variable. Every feature is rendered;
keys without a dedicated rule fall through to `str(value)`.
"""

from typing import Any, Callable, Dict, Mapping

from land_trainer.agent.prompts import PARCEL_BRIEF_TEMPLATE
from land_trainer.agent.traits import humanize


def format_currency(value: Any) -> str:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return str(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def _suffix(suffix: str) -> Callable[[Any], str]:
    return lambda value: f"{value}{suffix}"


def format_yes_no(value: Any) -> str:
    if isinstance(value, str):
        return "Yes" if value.strip().lower() in ("true", "yes", "y", "1") else "No"
    return "Yes" if value else "No"


FEATURE_FORMATTERS: Dict[str, Callable[[Any], str]] = {
    "market_value": format_currency,
    "assessed_value": format_currency,
    "acres": _suffix(" acres"),
    "road_frontage": _suffix(" feet"),
    "buildability_percentage": _suffix("%"),
    "slope": _suffix("% grade"),
    "fema_coverage": _suffix("%"),
    "wetland_coverage": _suffix("%"),
    "landlocked": format_yes_no,
    "corporate_owned": format_yes_no,
}


def format_feature_value(key: str, value: Any) -> str:
    formatter = FEATURE_FORMATTERS.get(str(key), str)
    return formatter(value)


def feature_lines(features: Mapping) -> str:
    """Bulleted `- <Feature>: <value>` lines in the feature map's order."""
    if not isinstance(features, Mapping):
        return ""
    return "\n".join(
        f"- {humanize(str(key))}: {format_feature_value(key, value)}"
        for key, value in features.items()
    )


def compile_parcel_brief(parcel) -> str:
    """
    Build the property brief for a Parcel.

    Args:
        parcel: Parcel model instance (city, state, parcel_number, property_features)

    Returns:
        Multi-line brief text
    """
    return PARCEL_BRIEF_TEMPLATE.format(
        city=parcel.city,
        state=parcel.state,
        parcel_number=parcel.parcel_number,
        property_features_list=feature_lines(parcel.property_features),
    )
