"""
Document models for the league dashboard collections

Documents are stored with camelCase keys; models expose snake_case attributes
and dump with aliases. Artist references arrive either as plain names (CSV
submissions) or as catalog credit objects (track metadata) and are normalized
once by ``normalize_artists``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ALBUM = "Unknown Album"

AUDIO_FEATURE_FIELDS = (
    "energy",
    "danceability",
    "valence",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
    "tempo",
    "key",
    "mode",
    "time_signature",
    "loudness",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uri_to_id(spotify_uri: str) -> str:
    """spotify:track:2gZUPNdnz5Y45eiGxpHGSc -> 2gZUPNdnz5Y45eiGxpHGSc"""
    return spotify_uri.split(":")[-1]


def dedupe(values: Iterable[str]) -> List[str]:
    """Remove duplicates keeping first-encounter order"""
    seen = set()
    unique = []
    for value in values:
        if value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


class DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, **kwargs)


# ===================
# ARTIST REFERENCES
# ===================
class ArtistCredit(DocumentModel):
    """Artist as credited on a track"""
    name: str
    id: Optional[str] = None
    uri: Optional[str] = None


ArtistRef = Union[str, Dict[str, Any], ArtistCredit]


def normalize_artists(value: Union[None, ArtistRef, List[ArtistRef]]) -> List[ArtistCredit]:
    """
    Normalize any stored artist representation into a list of ArtistCredit.

    Accepts a single name, a single credit dict, or a list mixing both.
    Empty entries are dropped; credit dicts without a name become
    ``Unknown Artist``.
    """
    if value is None:
        return []
    if isinstance(value, (str, dict, ArtistCredit)):
        value = [value]

    credits = []
    for ref in value:
        if isinstance(ref, ArtistCredit):
            credits.append(ref)
        elif isinstance(ref, dict):
            name = ref.get("name")
            credits.append(ArtistCredit(
                name=str(name) if name else UNKNOWN_ARTIST,
                id=ref.get("id"),
                uri=ref.get("uri"),
            ))
        elif ref is None or ref == "":
            continue
        else:
            credits.append(ArtistCredit(name=str(ref)))
    return credits


def primary_artist_name(credits: List[ArtistCredit]) -> str:
    return credits[0].name if credits else UNKNOWN_ARTIST


def display_artist_names(credits: List[ArtistCredit]) -> str:
    return ", ".join(credit.name for credit in credits) if credits else UNKNOWN_ARTIST


def album_display_name(album: Any) -> str:
    if isinstance(album, dict) and album.get("name"):
        return album["name"]
    if album:
        return str(album)
    return UNKNOWN_ALBUM


# ===================
# LEAGUE DATA (CSV-sourced)
# ===================
class League(DocumentModel):
    id: int = Field(alias="_id")
    name: str


class Competitor(DocumentModel):
    id: str = Field(alias="_id")
    name: str
    leagues: List[int] = Field(default_factory=list)


class Round(DocumentModel):
    id: str = Field(alias="_id")
    league_id: int
    name: Optional[str] = None
    description: Optional[str] = None
    playlist_url: Optional[str] = None
    created: Optional[datetime] = None


class Submission(DocumentModel):
    id: Any = Field(default=None, alias="_id")
    round_id: str
    league_id: int
    submitter_id: str
    spotify_uri: str
    title: Optional[str] = None
    artists: List[str] = Field(default_factory=list)
    album: Optional[str] = None
    comment: Optional[str] = None
    created: Optional[datetime] = None


class Vote(DocumentModel):
    id: Any = Field(default=None, alias="_id")
    round_id: str
    league_id: int
    voter_id: str
    spotify_uri: str
    points_assigned: int = Field(ge=0)
    comment: Optional[str] = None
    created: Optional[datetime] = None


# ===================
# CATALOG METADATA
# ===================
class AlbumInfo(DocumentModel):
    name: Optional[str] = None
    id: Optional[str] = None
    uri: Optional[str] = None
    release_date: Optional[str] = None
    release_date_precision: Optional[str] = None
    images: List[Dict[str, Any]] = Field(default_factory=list)


class TrackMetadata(DocumentModel):
    spotify_uri: str
    name: str
    artists: List[ArtistCredit] = Field(default_factory=list)
    album: Optional[AlbumInfo] = None
    duration_ms: Optional[int] = None
    popularity: Optional[int] = Field(default=None, ge=0, le=100)
    explicit: Optional[bool] = None
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None

    energy: Optional[float] = None
    danceability: Optional[float] = None
    valence: Optional[float] = None
    acousticness: Optional[float] = None
    instrumentalness: Optional[float] = None
    liveness: Optional[float] = None
    speechiness: Optional[float] = None
    tempo: Optional[float] = None
    key: Optional[int] = None
    mode: Optional[int] = None
    time_signature: Optional[int] = None
    loudness: Optional[float] = None

    primary_genre: Optional[str] = None
    all_genres: List[str] = Field(default_factory=list)

    fetched_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @field_validator("artists", mode="before")
    @classmethod
    def _normalize_artists(cls, value: Any) -> List[ArtistCredit]:
        return normalize_artists(value)

    @field_validator("all_genres")
    @classmethod
    def _unique_genres(cls, value: List[str]) -> List[str]:
        return dedupe(value)

    @classmethod
    def from_catalog(cls, record: Dict[str, Any], spotify_uri: str) -> "TrackMetadata":
        """Build a metadata document from a catalog track object"""
        album = record.get("album") or {}
        now = utcnow()
        return cls(
            spotify_uri=spotify_uri,
            name=record.get("name") or UNKNOWN_TITLE,
            artists=normalize_artists(record.get("artists")),
            album=AlbumInfo(
                name=album.get("name"),
                id=album.get("id"),
                uri=album.get("uri"),
                release_date=album.get("release_date"),
                release_date_precision=album.get("release_date_precision"),
                images=album.get("images") or [],
            ) if album else None,
            duration_ms=record.get("duration_ms"),
            popularity=record.get("popularity"),
            explicit=record.get("explicit"),
            preview_url=record.get("preview_url"),
            spotify_url=(record.get("external_urls") or {}).get("spotify"),
            fetched_at=now,
            last_updated=now,
        )

    def catalog_fields(self) -> Dict[str, Any]:
        """Fields owned by the basic-metadata fetch (genre fields excluded)"""
        return self.to_document(
            exclude={"primary_genre", "all_genres"},
            exclude_none=True,
        )


class ArtistMetadata(DocumentModel):
    artist_id: str
    artist_uri: Optional[str] = None
    name: str
    genres: List[str] = Field(default_factory=list)
    popularity: Optional[int] = None
    followers: int = 0
    images: List[Dict[str, Any]] = Field(default_factory=list)
    spotify_url: Optional[str] = None
    fetched_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @field_validator("genres")
    @classmethod
    def _unique_genres(cls, value: List[str]) -> List[str]:
        return dedupe(value)

    @classmethod
    def from_catalog(cls, record: Dict[str, Any]) -> "ArtistMetadata":
        now = utcnow()
        return cls(
            artist_id=record["id"],
            artist_uri=record.get("uri"),
            name=record.get("name") or UNKNOWN_ARTIST,
            genres=record.get("genres") or [],
            popularity=record.get("popularity"),
            followers=(record.get("followers") or {}).get("total") or 0,
            images=record.get("images") or [],
            spotify_url=(record.get("external_urls") or {}).get("spotify"),
            fetched_at=now,
            last_updated=now,
        )


# ===================
# DERIVED COLLECTIONS
# ===================
class GenreEntry(DocumentModel):
    name: str
    artist_count: int = 0
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class DerivedSong(DocumentModel):
    metadata_id: str
    name: str
    artists: List[str]
    genres: List[str] = Field(default_factory=list)
    submission_count: int = 0


def audio_features_document(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map a catalog audio-features object to stored camelCase fields"""
    document = {}
    for field in AUDIO_FEATURE_FIELDS:
        if raw.get(field) is not None:
            document[to_camel(field)] = raw[field]
    return document
