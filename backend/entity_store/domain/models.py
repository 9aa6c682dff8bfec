"""
Domain Entity Schemas

Pydantic schemas used to validate the four stored entity types before they
are written: heritage sites, artifacts, visitor sessions and cached content.
Entities themselves travel as plain dictionaries with camelCase fields.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl


class Language(str, Enum):
    """Supported content languages."""

    ENGLISH = "en"
    HINDI = "hi"
    TAMIL = "ta"
    TELUGU = "te"
    BENGALI = "bn"
    MARATHI = "mr"
    GUJARATI = "gu"
    KANNADA = "kn"
    MALAYALAM = "ml"
    PUNJABI = "pa"


class ContentType(str, Enum):
    AUDIO_GUIDE = "audio_guide"
    VIDEO = "video"
    INFOGRAPHIC = "infographic"
    TEXT = "text"
    IMAGE = "image"


class ArtifactType(str, Enum):
    PILLAR = "pillar"
    STATUE = "statue"
    TEMPLE = "temple"
    CARVING = "carving"
    INSCRIPTION = "inscription"
    ARCHITECTURE = "architecture"
    PAINTING = "painting"
    ARTIFACT = "artifact"


class InteractionType(str, Enum):
    VIEW = "view"
    PLAY = "play"
    PAUSE = "pause"
    COMPLETE = "complete"
    SKIP = "skip"
    SHARE = "share"


class GeoCoordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: Optional[float] = None


class RelativeCoordinates(BaseModel):
    x: float
    y: float
    z: Optional[float] = None


# Heritage sites


class SiteMetadata(BaseModel):
    createdAt: datetime
    updatedAt: datetime
    version: str
    curator: str
    tags: List[str]
    status: Literal["active", "inactive", "maintenance"]


class ArtifactReference(BaseModel):
    artifactId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: ArtifactType
    location: RelativeCoordinates
    qrCodeData: str = Field(..., min_length=1)
    description: str


class HeritageSite(BaseModel):
    """Heritage site record, keyed by siteId."""

    siteId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    location: GeoCoordinates
    description: str
    historicalPeriod: str
    culturalSignificance: str
    artifacts: List[ArtifactReference]
    supportedLanguages: List[Language] = Field(..., min_length=1)
    metadata: SiteMetadata


# Artifacts


class ArtifactDimensions(BaseModel):
    height: Optional[float] = Field(default=None, gt=0)
    width: Optional[float] = Field(default=None, gt=0)
    depth: Optional[float] = Field(default=None, gt=0)
    weight: Optional[float] = Field(default=None, gt=0)


class ArtifactMetadata(BaseModel):
    """Artifact record, keyed by (siteId, artifactId)."""

    artifactId: str = Field(..., min_length=1)
    siteId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: ArtifactType
    description: str
    historicalContext: str
    culturalSignificance: str
    constructionPeriod: Optional[str] = None
    materials: Optional[List[str]] = None
    dimensions: Optional[ArtifactDimensions] = None
    conservationStatus: Optional[str] = None
    lastUpdated: datetime


# Visitor sessions


class UserPreferences(BaseModel):
    language: Language
    audioSpeed: float = Field(default=1.0, ge=0.5, le=2.0)
    volume: float = Field(default=0.8, ge=0.0, le=1.0)
    highContrast: bool = False
    largeText: bool = False
    audioDescriptions: bool = False


class ContentInteraction(BaseModel):
    contentId: str = Field(..., min_length=1)
    interactionType: InteractionType
    timestamp: datetime
    duration: Optional[float] = Field(default=None, gt=0)
    completionPercentage: Optional[float] = Field(default=None, ge=0, le=100)


class ContentSource(BaseModel):
    id: str
    title: str
    url: Optional[HttpUrl] = None
    confidence: float = Field(..., ge=0, le=1)


class QAInteraction(BaseModel):
    id: str
    question: str = Field(..., min_length=1)
    answer: str
    timestamp: datetime
    language: Language
    confidence: float = Field(..., ge=0, le=1)
    sources: List[ContentSource]


class UserSession(BaseModel):
    """Visitor session record, keyed by sessionId."""

    sessionId: str = Field(..., min_length=1)
    userId: Optional[str] = None
    siteId: str = Field(..., min_length=1)
    preferredLanguage: Language
    visitStartTime: datetime
    scannedArtifacts: List[str]
    contentInteractions: List[ContentInteraction]
    conversationHistory: List[QAInteraction]
    preferences: UserPreferences


# Generated content


class ContentData(BaseModel):
    text: Optional[str] = None
    audioUrl: Optional[HttpUrl] = None
    videoUrl: Optional[HttpUrl] = None
    infographicData: Optional[Dict[str, Any]] = None
    duration: Optional[float] = Field(default=None, gt=0)
    fileSize: Optional[int] = Field(default=None, gt=0)


class ContentMetadata(BaseModel):
    siteId: str = Field(..., min_length=1)
    artifactId: str = Field(..., min_length=1)
    contentType: ContentType
    language: Language
    version: str
    createdAt: datetime
    updatedAt: datetime
    tags: List[str]


class CacheConfiguration(BaseModel):
    ttl: float = Field(..., gt=0, description="Time to live in seconds")
    priority: int = Field(..., ge=1, le=10)
    tags: List[str]


class MultimediaContent(BaseModel):
    """Generated content record, keyed by contentId."""

    contentId: str = Field(..., min_length=1)
    artifactId: str = Field(..., min_length=1)
    contentType: ContentType
    language: Language
    data: ContentData
    metadata: ContentMetadata
    cacheSettings: CacheConfiguration
