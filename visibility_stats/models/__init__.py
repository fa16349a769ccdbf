from visibility_stats.models.ai_response import AiResponse
from visibility_stats.models.brand_evaluation import BrandEvaluation
from visibility_stats.models.brand_mention import BrandMention
from visibility_stats.models.citation import Citation
from visibility_stats.models.competitor import Competitor
from visibility_stats.models.daily_brand_stat import DailyBrandStat
from visibility_stats.models.project import Project
from visibility_stats.models.prompt_tracking import PromptTracking
from visibility_stats.models.region import Region
from visibility_stats.models.rollup_watermark import RollupWatermark
from visibility_stats.models.topic import Topic

__all__ = [
    "AiResponse",
    "BrandEvaluation",
    "BrandMention",
    "Citation",
    "Competitor",
    "DailyBrandStat",
    "Project",
    "PromptTracking",
    "Region",
    "RollupWatermark",
    "Topic",
]
