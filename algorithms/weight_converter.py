from models import MeasurementSettings, MeasurementUnit


class UnitConverter:
    """Conversions between metric and imperial weight and distance."""

    KG_TO_LB = 2.20462
    KM_TO_MI = 0.621371

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * UnitConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / UnitConverter.KG_TO_LB, 2)

    @staticmethod
    def km_to_mi(km: float) -> float:
        return round(km * UnitConverter.KM_TO_MI, 2)

    @staticmethod
    def mi_to_km(mi: float) -> float:
        return round(mi / UnitConverter.KM_TO_MI, 2)

    @classmethod
    def _convert(
        cls, value: float, source: MeasurementUnit, target: MeasurementUnit, factor: float
    ) -> float:
        if source == target:
            return value
        if source == "metric" and target == "imperial":
            return value * factor
        if source == "imperial" and target == "metric":
            return value / factor
        raise ValueError(f"unknown unit conversion {source!r} -> {target!r}")

    @classmethod
    def convert_weight(
        cls, weight: float, source: MeasurementUnit, target: MeasurementUnit
    ) -> float:
        """Convert kg <-> lb without rounding."""
        return cls._convert(weight, source, target, cls.KG_TO_LB)

    @classmethod
    def convert_distance(
        cls, distance: float, source: MeasurementUnit, target: MeasurementUnit
    ) -> float:
        """Convert km <-> mi without rounding."""
        return cls._convert(distance, source, target, cls.KM_TO_MI)

    @staticmethod
    def weight_unit_label(settings: MeasurementSettings) -> str:
        return "kg" if settings.weight_unit == "metric" else "lbs"

    @staticmethod
    def distance_unit_label(settings: MeasurementSettings) -> str:
        return "km" if settings.distance_unit == "metric" else "mi"

    @classmethod
    def format_weight(cls, weight: float, settings: MeasurementSettings) -> str:
        """Render ``weight`` in the active unit; the value is not converted."""
        return f"{weight:.1f} {cls.weight_unit_label(settings)}"

    @classmethod
    def format_distance(cls, distance: float, settings: MeasurementSettings) -> str:
        """Render ``distance`` in the active unit; the value is not converted."""
        return f"{distance:.2f} {cls.distance_unit_label(settings)}"
