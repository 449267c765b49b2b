"""
Default KPI catalog seeded into a fresh database.
"""

from typing import List
from schemas.kpi import KPIConfig, ScoringRangeConfig, validate_catalog
from models.base import CalculationType, ScoringPeriod


def standard_ranges() -> List[ScoringRangeConfig]:
    """[0,25)->1, [25,50)->2, [50,75)->3, [75,100)->4, [100,inf)->5"""
    return [
        ScoringRangeConfig(min_percentage=0, max_percentage=25, score_value=1),
        ScoringRangeConfig(min_percentage=25, max_percentage=50, score_value=2),
        ScoringRangeConfig(min_percentage=50, max_percentage=75, score_value=3),
        ScoringRangeConfig(min_percentage=75, max_percentage=100, score_value=4),
        ScoringRangeConfig(min_percentage=100, max_percentage=None, score_value=5),
    ]


def default_kpis() -> List[KPIConfig]:
    kpis = [
        KPIConfig(
            code="SKORING_PUBLIKASI_MEDIA",
            name="Skoring Hasil Publikasi Media Massa",
            description="Jumlah tautan publikasi media massa yang valid dan tidak duplikat",
            indicator_type="skoring-publikasi-media",
            calculation_type=CalculationType.SUM,
            target_value=100,
            weight_percentage=20,
            unit="poin",
            scoring_period=ScoringPeriod.MONTHLY,
            scoring_ranges=standard_ranges(),
        ),
        KPIConfig(
            code="PUBLIKASI_SIARAN_PERS",
            name="Publikasi Siaran Pers Sub Holding",
            description="Target 10 publikasi per bulan atau 60 per semester",
            indicator_type="publikasi-siaran-pers",
            calculation_type=CalculationType.COUNT,
            target_value=10,
            monthly_target=10,
            semester_target=60,
            weight_percentage=20,
            unit="publikasi",
            scoring_period=ScoringPeriod.MONTHLY,
            scoring_ranges=standard_ranges(),
        ),
        KPIConfig(
            code="PRODUKSI_KONTEN_MEDSOS",
            name="Produksi Konten Media Sosial",
            description="Target 10 konten per bulan atau 60 per semester",
            indicator_type="produksi-konten-medsos",
            calculation_type=CalculationType.COUNT,
            target_value=10,
            monthly_target=10,
            semester_target=60,
            weight_percentage=20,
            unit="konten",
            scoring_period=ScoringPeriod.MONTHLY,
            scoring_ranges=standard_ranges(),
        ),
        KPIConfig(
            code="TARGET_REALISASI",
            name="Capaian Target dan Realisasi",
            description="Persentase realisasi terhadap target dengan bukti video",
            indicator_type="target-realisasi",
            calculation_type=CalculationType.PERCENTAGE,
            target_value=100,
            weight_percentage=20,
            unit="%",
            scoring_period=ScoringPeriod.MONTHLY,
            scoring_ranges=standard_ranges(),
        ),
    ]
    validate_catalog(kpis)
    return kpis
