#!/usr/bin/env python3
"""Curated monthly themes and stand-by stories.

Used when no feed returns any articles, so an issue can always be generated.
The monthly theme is taken from here for every issue, live or not.
"""

from typing import Dict, List

from models import Article, GatheredContent, MonthlyTheme

FALLBACK_SOURCE = "Kingdom Intelligence Report"

MONTHLY_THEMES: Dict[int, MonthlyTheme] = {
    1: MonthlyTheme("New Kingdom Beginnings", "Starting the year under Kingdom authority"),
    2: MonthlyTheme("Kingdom Love", "The radical, sacrificial love of King Jesus"),
    3: MonthlyTheme("Kingdom Advancement", "Pressing forward into new territory for the King"),
    4: MonthlyTheme("Resurrection Power", "Living in the power of the risen Christ"),
    5: MonthlyTheme("Kingdom Mothers", "Raising the next generation of Kingdom citizens"),
    6: MonthlyTheme("Kingdom Fathers", "Fatherhood as Kingdom leadership"),
    7: MonthlyTheme("Kingdom Freedom", "True freedom under the reign of Christ"),
    8: MonthlyTheme("Kingdom Education", "Developing a Kingdom worldview"),
    9: MonthlyTheme("Kingdom Harvest", "The harvest is plentiful - laboring for the Kingdom"),
    10: MonthlyTheme("Kingdom Authority", "Walking in the authority Christ delegated to His Church"),
    11: MonthlyTheme("Kingdom Gratitude", "Thanksgiving as a Kingdom discipline"),
    12: MonthlyTheme("The King Has Come", "Advent - celebrating the arrival of the King"),
}

_STORIES = (
    (
        "Underground Church Growth Continues in Restricted Nations",
        "Despite increasing persecution, the underground church continues to grow in nations where "
        "Christianity is restricted. Reports indicate that house churches are multiplying as believers "
        "share the gospel with boldness.",
        "Persecution & Growth",
    ),
    (
        "Church Planting Movements Accelerate Across Global South",
        "Church planting movements in Africa, Asia, and Latin America continue to accelerate, with "
        "thousands of new congregations forming as the gospel penetrates unreached communities.",
        "Missions",
    ),
    (
        "Christians Making Impact in Business and Marketplace",
        "Kingdom-minded entrepreneurs and business leaders are increasingly using their platforms to "
        "advance Kingdom values, create jobs, and demonstrate the lordship of Christ in the marketplace.",
        "Kingdom Influence",
    ),
    (
        "Global Prayer Movement Intensifies",
        "Prayer movements around the world are growing in intensity and unity, with millions joining in "
        "coordinated intercession for revival, persecuted believers, and Kingdom breakthrough.",
        "Prayer",
    ),
    (
        "Youth Revival Sweeping College Campuses",
        "A fresh wave of spiritual awakening is being reported on college campuses, with students "
        "committing to radical discipleship and Kingdom living in the face of cultural pressure.",
        "Revival",
    ),
    (
        "Christian Education Initiatives Transforming Communities",
        "Kingdom-centered education initiatives are transforming communities by equipping students with "
        "both academic excellence and a biblical worldview rooted in the lordship of Christ.",
        "Education",
    ),
)


def monthly_theme(month: int) -> MonthlyTheme:
    """Theme for a month; out-of-range values wrap around the calendar."""
    return MONTHLY_THEMES[(int(month) - 1) % 12 + 1]


def fallback_stories() -> List[Article]:
    return [
        Article(title=title, link="", description=description, published_at="", category=category, source=FALLBACK_SOURCE)
        for title, description, category in _STORIES
    ]


def fallback_content(month: int) -> GatheredContent:
    """Curated content for the month with fixed topic buckets."""
    stories = fallback_stories()
    return GatheredContent(
        top_stories=stories,
        mission_news=[stories[1]],
        persecution_updates=[stories[0]],
        revival_reports=[stories[4]],
        culture_influence=[stories[2], stories[5]],
        monthly_theme=monthly_theme(month),
        is_fallback=True,
    )
