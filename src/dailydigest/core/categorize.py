"""Rule-based domain categorization for browser visits.

Each category owns a list of substrings; the first category with a
substring contained in ``host + path`` wins. Unmatched domains fall into
``other``.

Example:
    >>> categorize_domain("www.github.com")
    'dev'
    >>> categorize_domain("news.ycombinator.com")
    'news'
"""

from __future__ import annotations

from urllib.parse import urlsplit

from dailydigest.core.models import BrowserVisit

OTHER = "other"

CATEGORY_RULES: dict[str, list[str]] = {
    "work": [
        "notion.so", "linear.app", "jira.", "confluence.", "asana.com",
        "monday.com", "clickup.com", "basecamp.com", "trello.com",
        "slack.com", "teams.microsoft.com", "zoom.us", "meet.google.com",
        "calendar.google.com", "mail.google.com", "outlook.",
        "loom.com", "figma.com", "miro.com", "airtable.com", "coda.io",
        "notion.site", "docs.google.com", "sheets.google.com",
        "slides.google.com", "drive.google.com", "dropbox.com",
        "box.com", "sharepoint.com",
        "salesforce.com", "hubspot.com", "zendesk.com", "freshdesk.com", "intercom.com",
        "pagerduty.com", "datadog.com", "sentry.io", "newrelic.com",
        "calendly.com", "typeform.com", "surveymonkey.com",
        "office.com", "onedrive.com", "bitwarden.com",
    ],
    "dev": [
        "github.com", "gitlab.com", "bitbucket.org", "stackoverflow.com",
        "stackexchange.com", "npmjs.com", "pypi.org", "crates.io",
        "hub.docker.com", "vercel.com", "netlify.com", "railway.app",
        "render.com", "fly.io", "heroku.com", "aws.amazon.com",
        "console.cloud.google.com", "portal.azure.com", "cloudflare.com",
        "grafana.com", "rust-lang.org", "python.org",
        "replit.com", "codepen.io", "codesandbox.io", "cursor.sh",
        "anthropic.com", "openai.com", "huggingface.co", "langchain.com",
        "docs.", "developer.", "api.",
        "jsfiddle.net", "stackblitz.com", "w3schools.com", "caniuse.com",
        "regex101.com", "jwt.io", "postman.com", "insomnia.rest",
        "bundlephobia.com", "dbdiagram.io", "devdocs.io",
        "gitbook.com", "readthedocs.io",
        "supabase.com", "planetscale.com", "neon.tech", "turso.tech", "upstash.com",
    ],
    "research": [
        "wikipedia.org", "arxiv.org", "scholar.google.com", "pubmed.ncbi.",
        "jstor.org", "researchgate.net", "semanticscholar.org",
        "perplexity.ai", "wolframalpha.com", "britannica.com",
        "medium.com", "substack.com", "lesswrong.com", "hbr.org",
        "springer.com", "nature.com", "sciencedirect.com",
        "biorxiv.org", "medrxiv.org",
        "ssrn.com", "nber.org", "paperswithcode.com",
    ],
    "news": [
        "nytimes.com", "washingtonpost.com", "theguardian.com", "bbc.",
        "reuters.com", "apnews.com", "bloomberg.com", "wsj.com",
        "ft.com", "economist.com", "theatlantic.com", "wired.com",
        "techcrunch.com", "theverge.com", "arstechnica.com",
        "news.ycombinator.com", "reddit.com/r/news", "axios.com",
        "politico.com", "npr.org",
        "cnn.com", "foxnews.com", "nbcnews.com", "cbsnews.com", "msnbc.com",
        "vice.com", "vox.com", "huffpost.com", "newsweek.com",
        "thehill.com", "propublica.org", "pbs.org",
    ],
    "social": [
        "twitter.com", "x.com", "reddit.com", "linkedin.com",
        "facebook.com", "instagram.com", "threads.net", "mastodon.",
        "discord.com", "telegram.org", "whatsapp.com", "messenger.com",
        "bluesky.", "bsky.app",
        "tumblr.com", "pinterest.com", "snapchat.com", "bereal.com",
        "quora.com", "producthunt.com", "nextdoor.com", "flipboard.com",
        "dev.to", "hashnode.com",
    ],
    "media": [
        "youtube.com", "netflix.com", "spotify.com", "twitch.tv",
        "hulu.com", "disneyplus.com", "hbomax.com", "max.com",
        "primevideo.com", "soundcloud.com", "vimeo.com", "tiktok.com",
        "podcasts.apple.com", "open.spotify.com",
        "peacocktv.com", "paramountplus.com", "crunchyroll.com", "funimation.com",
        "sling.com", "fubo.tv", "directv.com", "plex.tv",
        "espn.com", "nfl.com", "nba.com", "mlb.com",
        "bandcamp.com", "tidal.com", "deezer.com", "pandora.com", "iheartradio.com",
        "audible.com", "dailymotion.com",
    ],
    "shopping": [
        "amazon.com", "ebay.com", "etsy.com", "shopify.com",
        "bestbuy.com", "walmart.com", "target.com", "costco.com",
        "newegg.com", "bhphotovideo.com",
        "wayfair.com", "homedepot.com", "lowes.com", "ikea.com", "overstock.com",
        "macys.com", "nordstrom.com", "gap.com", "oldnavy.com",
        "hm.com", "zara.com", "uniqlo.com", "asos.com", "revolve.com",
        "zappos.com", "footlocker.com", "nike.com", "adidas.com",
        "aliexpress.com", "temu.com", "wish.com", "shein.com",
        "chewy.com", "petsmart.com", "petco.com",
        "adorama.com", "staples.com", "officedepot.com", "microcenter.com",
        "gamestop.com", "autozone.com",
    ],
    "finance": [
        "chase.com", "bankofamerica.com", "wellsfargo.com", "citibank.com",
        "schwab.com", "fidelity.com", "vanguard.com", "robinhood.com",
        "coinbase.com", "kraken.com", "mint.com", "ynab.com",
        "turbotax.com", "hrblock.com", "paypal.com", "stripe.com",
        "venmo.com", "cashapp.com",
        "capitalone.com", "discover.com", "americanexpress.com",
        "sofi.com", "chime.com", "wise.com", "revolut.com",
        "etrade.com", "wealthfront.com", "betterment.com", "acorns.com",
        "nerdwallet.com", "bankrate.com", "creditkarma.com",
    ],
    "ai_tools": [
        "claude.ai", "chat.openai.com", "chatgpt.com", "gemini.google.com",
        "perplexity.ai", "cursor.sh", "copilot.microsoft.com",
        "poe.com", "character.ai", "midjourney.com", "runway.ml",
        "elevenlabs.io", "replicate.com",
        "mistral.ai", "cohere.com", "together.ai", "groq.com", "ollama.com",
        "lmsys.org",
        "pi.ai", "you.com", "phind.com", "aider.chat",
        "v0.dev", "bolt.new", "tabnine.com", "codeium.com", "sourcegraph.com",
    ],
    "personal": [
        "health.", "myfitnesspal.com", "strava.com", "garmin.com",
        "whoop.com", "oura.com", "calm.com", "headspace.com",
        "fitbit.com", "noom.com", "peloton.com", "cronometer.com",
        "loseit.com", "alltrails.com", "beachbody.com",
        "goodreads.com", "ancestry.com", "23andme.com",
        "insighttimer.com", "wakingup.com", "tenpercent.com",
        "habitica.com", "stickk.com",
    ],
    "education": [
        "coursera.org", "edx.org", "udemy.com", "skillshare.com",
        "linkedin.com/learning", "pluralsight.com", "udacity.com",
        "khanacademy.org", "duolingo.com", "brilliant.org",
        "mit.edu", "stanford.edu", "harvard.edu", "ocw.mit.edu",
        "canvas.", "blackboard.", "moodle.", "instructure.com",
        "chegg.com", "quizlet.com",
        "leetcode.com", "hackerrank.com", "codecademy.com",
        "freecodecamp.org", "theodinproject.com",
        "ted.com", "futurelearn.com", "openculture.com",
        "datacamp.com", "deeplearning.ai", "fast.ai",
        "coursehero.com", "desmos.com", "code.org",
    ],
    "gaming": [
        "store.steampowered.com", "epicgames.com",
        "gog.com", "itch.io", "humblebundle.com",
        "xbox.com", "playstation.com", "nintendo.com",
        "battlenet.com", "ea.com", "ubisoft.com",
        "igdb.com", "ign.com", "gamespot.com",
        "pcgamer.com", "kotaku.com", "polygon.com",
        "speedrun.com", "howlongtobeat.com",
        "minecraft.net", "mojang.com",
        "leagueoflegends.com", "valorant.com", "blizzard.com",
        "rockstargames.com", "activision.com",
        "nexusmods.com", "protondb.com", "curseforge.com",
        "g2a.com", "fanatical.com",
    ],
    "writing": [
        "grammarly.com", "hemingwayapp.com", "prowritingaid.com",
        "overleaf.com", "ghost.org", "nanowrimo.org", "ulysses.app",
        "reedsy.com", "atticus.io", "wattpad.com", "fictionpress.com",
        "750words.com", "draft.app", "novelcrafter.com", "dabble.me",
    ],
    "pkm": [
        "obsidian.md", "logseq.com", "roamresearch.com",
        "capacities.io", "tana.inc", "mem.ai", "reflect.app",
        "readwise.io", "raindrop.io", "instapaper.com",
        "hypothesis.is", "zettelkasten.de",
        "workflowy.com", "craft.do", "anytype.io", "heptabase.com",
        "supernotes.app",
    ],
}

CATEGORY_LABELS: dict[str, tuple[str, str]] = {
    "work": ("\U0001F4BC", "Work"),
    "dev": ("⚙️", "Dev & Engineering"),
    "research": ("\U0001F52C", "Research"),
    "news": ("\U0001F4F0", "News"),
    "social": ("\U0001F4AC", "Social"),
    "media": ("\U0001F3AC", "Media & Entertainment"),
    "shopping": ("\U0001F6D2", "Shopping"),
    "finance": ("\U0001F4B0", "Finance"),
    "ai_tools": ("\U0001F916", "AI Tools"),
    "personal": ("\U0001F3C3", "Personal"),
    "education": ("\U0001F393", "Education"),
    "gaming": ("\U0001F3AE", "Gaming"),
    "writing": ("✏️", "Writing"),
    "pkm": ("\U0001F9E0", "PKM & Notes"),
    OTHER: ("\U0001F310", "Other"),
}


def category_display_name(category: str) -> str:
    """Human label for a category key, e.g. ``dev`` -> ``Dev & Engineering``."""
    return CATEGORY_LABELS.get(category, CATEGORY_LABELS[OTHER])[1]


def categorize_domain(domain: str, path: str = "") -> str:
    """Return the category key for a hostname (and optional path)."""
    target = domain.strip().lower()
    if target.startswith("www."):
        target = target[4:]
    target += path.lower()
    for category, patterns in CATEGORY_RULES.items():
        for pattern in patterns:
            if pattern in target:
                return category
    return OTHER


def categorize_visits(visits: list[BrowserVisit]) -> dict[str, list[BrowserVisit]]:
    """Group visits by category, filling in ``domain`` and ``category``.

    Visits whose URL cannot be parsed are skipped. Empty categories are
    omitted; keys follow CATEGORY_LABELS order.
    """
    grouped: dict[str, list[BrowserVisit]] = {key: [] for key in CATEGORY_LABELS}
    for visit in visits:
        try:
            parts = urlsplit(visit.url)
            hostname = parts.hostname
        except ValueError:
            continue
        if not hostname:
            continue
        domain = hostname[4:] if hostname.startswith("www.") else hostname
        category = visit.category if visit.category in CATEGORY_LABELS else categorize_domain(domain, parts.path)
        grouped[category].append(visit.model_copy(update={"domain": domain, "category": category}))
    return {key: items for key, items in grouped.items() if items}
