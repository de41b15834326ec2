"""AI design-system generation.

Turns a brand brief into colors and typography with a single structured LLM
call. The quality tier decides how much the model may write and how
adventurous it may be.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.clients.base_llm_client import BaseLLMClient
from src.tiers import TierConfig
from src.utils.logger import get_logger, truncate

log = get_logger(__name__)


class ColorPalette(BaseModel):
    name: str
    main: str = Field(description="Main hex color, e.g. #1F6F8B")
    shades: dict[str, str] = Field(
        default_factory=dict, description="Shade scale 50-950 mapped to hex values"
    )
    description: Optional[str] = None


class SemanticColors(BaseModel):
    success: ColorPalette
    error: ColorPalette
    warning: ColorPalette
    info: ColorPalette


class DesignColors(BaseModel):
    primary: ColorPalette
    secondary: ColorPalette
    accent: ColorPalette
    neutral: ColorPalette
    semantic: SemanticColors


class FontFace(BaseModel):
    family: str
    weights: list[int] = Field(default_factory=lambda: [400, 700])
    fallback: str = "sans-serif"


class FontPairing(BaseModel):
    name: str
    heading: FontFace
    body: FontFace
    description: str = ""
    use_case: str = ""


class Typography(BaseModel):
    font_pairs: list[FontPairing]
    type_scale: dict[str, str] = Field(
        default_factory=dict, description="Size tokens xs..8xl mapped to rem values"
    )
    recommendations: list[str] = Field(default_factory=list)


class DesignSystemPayload(BaseModel):
    """What the generator returns and what the cache stores."""

    colors: DesignColors
    typography: Typography
    brand_summary: str = ""


SYSTEM_PROMPT = """You are a senior brand designer producing design systems.
Return colors and typography that fit the brand, not generic defaults.
Avoid stock framework colors such as #3B82F6, #8B5CF6, #EC4899 and #10B981.
Every palette needs a main color and an 11-step shade scale (50 to 950).
Font pairings must use real, freely available font families."""


def build_messages(
    brand_description: str,
    industry: Optional[str],
    audience: Optional[str],
    tier_config: TierConfig,
) -> list[dict]:
    lines = [f"Brand description: {brand_description.strip()}"]
    if industry:
        lines.append(f"Industry: {industry.strip()}")
    if audience:
        lines.append(f"Target audience: {audience.strip()}")
    lines.append("")
    lines.append(
        f"Produce about {tier_config.color_count} colors in total across all palettes "
        f"and {tier_config.font_pairings} font pairings."
    )
    lines.append("Include a full type scale from xs to 8xl and a one-sentence brand summary.")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


class DesignSystemGenerator:
    def __init__(self, llm_client: BaseLLMClient):
        self.llm_client = llm_client

    async def generate(
        self,
        brand_description: str,
        tier_config: TierConfig,
        industry: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> DesignSystemPayload:
        """Run one generation at the given tier.

        Raises whatever the LLM client raises (timeouts, provider errors,
        schema validation failures); the caller decides on compensation.
        """
        log.info(
            "design generation started",
            tier=tier_config.tier,
            model=self.llm_client.model,
            brand=truncate(brand_description, 100),
        )
        payload = await self.llm_client.generate_structured(
            messages=build_messages(brand_description, industry, audience, tier_config),
            response_format=DesignSystemPayload,
            temperature=tier_config.temperature,
            max_tokens=tier_config.max_tokens,
        )
        log.info(
            "design generation completed",
            tier=tier_config.tier,
            font_pairs=len(payload.typography.font_pairs),
        )
        return payload
