class WeightConverter:
    """Convert loads between the stored unit (kg) and the display unit."""

    KG_TO_LB = 2.20462

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @classmethod
    def to_display(cls, kg: float | None, unit: str) -> float | None:
        """Return ``kg`` expressed in ``unit`` ("kg" or "lb")."""
        if kg is None:
            return None
        if unit == "lb":
            return cls.kg_to_lb(kg)
        if unit != "kg":
            raise ValueError(f"unknown weight unit: {unit}")
        return kg
