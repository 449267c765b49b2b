"""
Indicator registry: column layouts the pipeline knows how to read.

Each indicator declares its canonical fields in order, the header aliases each
field may appear under, and how many fields a sheet must provide before it is
accepted. Link-bearing fields carry the media type their links are filed
under.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict
from models.base import IndicatorFamily, MediaType
from core.exceptions import SchemaError


class FieldSpec(BaseModel):
    """A canonical field and the headers it may appear under (priority order)."""
    name: str
    aliases: List[str] = Field(..., min_length=1)
    media_type: Optional[MediaType] = None
    numeric: bool = False

    @property
    def is_link(self) -> bool:
        return self.media_type is not None


class IndicatorConfig(BaseModel):
    """Column layout and record family of one indicator type."""
    key: str
    name: str
    family: IndicatorFamily
    fields: List[FieldSpec]
    min_fields: int = Field(1, ge=1)

    @validator("min_fields")
    def min_fields_within_field_count(cls, v, values):
        fields = values.get("fields") or []
        if v > len(fields):
            raise ValueError(f"min_fields={v} exceeds the {len(fields)} declared fields")
        return v

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def link_fields(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.is_link]

    def get_field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)


# ============================================================================
# Registered indicators
# ============================================================================

SKORING_PUBLIKASI_MEDIA = IndicatorConfig(
    key="skoring-publikasi-media",
    name="Skoring Hasil Publikasi Media Massa",
    family=IndicatorFamily.MEDIA_LINKS,
    fields=[
        FieldSpec(
            name="online_news",
            aliases=["Link Berita Media Online", "Berita Media Online", "Media Online", "Link Berita Online"],
            media_type=MediaType.ONLINE_NEWS,
        ),
        FieldSpec(
            name="social_media",
            aliases=["Link Media Sosial", "Media Sosial", "Link Sosmed", "Social Media"],
            media_type=MediaType.SOCIAL_MEDIA,
        ),
        FieldSpec(
            name="radio",
            aliases=["Monitoring Radio", "Link Radio", "Radio"],
            media_type=MediaType.RADIO,
        ),
        FieldSpec(
            name="print_media",
            aliases=["Monitoring Media cetak", "Media Cetak", "Link Media Cetak", "Print Media"],
            media_type=MediaType.PRINT_MEDIA,
        ),
        FieldSpec(
            name="running_text",
            aliases=["Monitoring Running Text", "Running Text"],
            media_type=MediaType.RUNNING_TEXT,
        ),
        FieldSpec(
            name="tv",
            aliases=["Monitoring Siaran TV", "Siaran TV", "Televisi"],
            media_type=MediaType.TV,
        ),
    ],
    min_fields=1,
)

PUBLIKASI_SIARAN_PERS = IndicatorConfig(
    key="publikasi-siaran-pers",
    name="Publikasi Siaran Pers Sub Holding",
    family=IndicatorFamily.MEDIA_LINKS,
    fields=[
        FieldSpec(name="judul", aliases=["Judul Siaran Pers", "Judul"]),
        FieldSpec(
            name="link_publikasi",
            aliases=["Link Publikasi", "Link Siaran Pers", "Tautan Publikasi"],
            media_type=MediaType.ONLINE_NEWS,
        ),
        FieldSpec(name="media", aliases=["Media", "Nama Media"]),
        FieldSpec(name="kategori", aliases=["Kategori"]),
        FieldSpec(name="catatan", aliases=["Catatan", "Keterangan"]),
    ],
    min_fields=2,
)

PRODUKSI_KONTEN_MEDSOS = IndicatorConfig(
    key="produksi-konten-medsos",
    name="Produksi Konten Media Sosial",
    family=IndicatorFamily.MEDIA_LINKS,
    fields=[
        FieldSpec(name="platform", aliases=["Platform"]),
        FieldSpec(name="jenis_konten", aliases=["Jenis Konten", "Tipe Konten"]),
        FieldSpec(
            name="link_konten",
            aliases=["Link Konten", "Tautan Konten"],
            media_type=MediaType.SOCIAL_MEDIA,
        ),
        FieldSpec(name="engagement", aliases=["Engagement"], numeric=True),
        FieldSpec(name="reach", aliases=["Reach", "Jangkauan"], numeric=True),
        FieldSpec(name="catatan", aliases=["Catatan", "Keterangan"]),
    ],
    min_fields=3,
)

TARGET_REALISASI = IndicatorConfig(
    key="target-realisasi",
    name="Target dan Realisasi",
    family=IndicatorFamily.TARGET_REALIZATION,
    fields=[
        FieldSpec(name="indikator", aliases=["Indikator", "Nama Indikator"]),
        FieldSpec(name="target", aliases=["Target"], numeric=True),
        FieldSpec(name="realisasi", aliases=["Realisasi", "Realization"], numeric=True),
        FieldSpec(
            name="link_video",
            aliases=["Link Video", "Video", "Tautan Video"],
            media_type=MediaType.VIDEO,
        ),
    ],
    min_fields=4,
)

INDICATORS: Dict[str, IndicatorConfig] = {
    config.key: config
    for config in (
        SKORING_PUBLIKASI_MEDIA,
        PUBLIKASI_SIARAN_PERS,
        PRODUKSI_KONTEN_MEDSOS,
        TARGET_REALISASI,
    )
}


def get_indicator(indicator_type: str) -> IndicatorConfig:
    """
    Look up an indicator configuration by key.

    Raises:
        SchemaError: Unknown indicator type
    """
    try:
        return INDICATORS[indicator_type]
    except KeyError:
        raise SchemaError(
            f"Unknown indicator type '{indicator_type}'",
            context={
                "indicator_type": indicator_type,
                "known_indicators": sorted(INDICATORS),
            }
        )
