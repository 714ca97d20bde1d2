"""Sensitive domain filter.

Matches browser visits and search queries against a curated, categorized
domain list plus user-supplied entries, then either drops the matching
records or redacts them in place. Matching is pure and in-memory.

Matching precedence for a visit, first match wins:

1. Exact hostname (``pornhub.com``)
2. Hostname is a subdomain of a listed domain (``de.pornhub.com``)
3. Path prefix on the exact host (``reddit.com/r/tifu``)
4. Path prefix on a parent host (``old.reddit.com/r/tifu``)

Hostnames are lower-cased and ``www.``-stripped before comparison.

Example:
    >>> from dailydigest.config import SensitivityConfig
    >>> config = SensitivityConfig(enabled=True, categories=["job_search"])
    >>> visits = [BrowserVisit(url="https://linkedin.com/jobs/view/123", title="Jobs")]
    >>> result = filter_sensitive_visits(visits, config)
    >>> result.filtered, result.by_category
    (1, {'job_search': 1})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from dailydigest.config import SensitivityConfig
from dailydigest.core.models import (
    BrowserVisit,
    FilterAction,
    SearchQuery,
    SensitivityCategory,
)

logger = logging.getLogger(__name__)

FILTERED_PATH = "[FILTERED]"
SENSITIVE_SEARCH = "[SENSITIVE_SEARCH]"


# =============================================================================
# Domain Lists
# =============================================================================

ADULT_DOMAINS = [
    "pornhub.com", "xvideos.com", "xnxx.com", "xhamster.com",
    "redtube.com", "youporn.com", "tube8.com", "spankbang.com",
    "brazzers.com", "bangbros.com", "realitykings.com", "naughtyamerica.com",
    "mofos.com", "digitalplayground.com", "wicked.com", "evilangel.com",
    "kink.com", "chaturbate.com", "myfreecams.com", "livejasmin.com",
    "cam4.com", "stripchat.com", "bongacams.com", "camsoda.com",
    "onlyfans.com", "fansly.com", "manyvids.com", "clips4sale.com",
    "porntrex.com", "eporner.com", "beeg.com", "hclips.com",
    "txxx.com", "vporn.com", "drtuber.com", "sunporno.com",
    "tnaflix.com", "empflix.com", "pornone.com", "4tube.com",
    "porn.com", "sex.com", "xxxbunker.com", "fuq.com",
    "thumbzilla.com", "pornpics.com", "hentaihaven.xxx", "nhentai.net",
    "hanime.tv", "rule34.xxx", "e-hentai.org", "gelbooru.com",
    "danbooru.donmai.us", "literotica.com", "asstr.org",
    "imagefap.com", "motherless.com", "heavy-r.com",
    "backpage.com", "bedpage.com", "skipthegames.com",
    "eros.com", "tryst.link", "slixa.com",
]

GAMBLING_DOMAINS = [
    "draftkings.com", "fanduel.com", "betmgm.com", "caesars.com",
    "bet365.com", "williamhill.com", "paddypower.com", "betfair.com",
    "unibet.com", "888.com", "pokerstars.com", "partypoker.com",
    "bovada.lv", "betonline.ag", "mybookie.ag", "betway.com",
    "betrivers.com", "pointsbet.com", "twinspires.com", "xbet.ag",
    "stake.com", "roobet.com", "bc.game", "rollbit.com",
    "lottery.com", "jackpocket.com", "lottoland.com",
    "oddschecker.com", "actionnetwork.com", "covers.com",
    "askgamblers.com", "casinoguru.com", "wizard-of-odds.com",
    "prizepicks.com", "underdog.io", "sleeper.com",
    "bitcasino.io", "fortunejack.com", "cloudbet.com",
]

DATING_DOMAINS = [
    "tinder.com", "bumble.com", "hinge.co", "match.com",
    "okcupid.com", "plentyoffish.com", "pof.com", "zoosk.com",
    "eharmony.com", "elitesingles.com", "silversingles.com",
    "ourtime.com", "christianmingle.com", "jdate.com",
    "coffee-meets-bagel.com", "happn.com", "badoo.com",
    "meetme.com", "tagged.com", "skout.com",
    "grindr.com", "scruff.com", "jackd.com", "hornet.com",
    "feeld.co", "3fun.co", "pureapp.com",
    "seeking.com", "seekingarrangement.com", "sugardaddymeet.com",
    "tantan.com", "momo.com", "lovoo.com", "meetic.com",
    "farmersonly.com", "theleague.com", "raya.com",
]

HEALTH_DOMAINS = [
    "mycharthealth.com", "mychart.com", "patient.info",
    "webmd.com", "mayoclinic.org", "healthline.com", "medlineplus.gov",
    "nhs.uk", "drugs.com", "rxlist.com", "goodrx.com",
    "teladoc.com", "amwell.com", "mdlive.com", "doctorondemand.com",
    "hims.com", "forhers.com", "cerebral.com", "brightside.com",
    "betterhelp.com", "talkspace.com", "regain.us",
    "psychologytoday.com", "nami.org", "samhsa.gov",
    "crisistextline.org", "suicidepreventionlifeline.org",
    "healthcare.gov", "anthem.com", "cigna.com", "aetna.com",
    "unitedhealthcare.com", "humana.com", "bcbs.com",
    "kaiserpermanente.org", "oscar.com",
    "babycenter.com", "whattoexpect.com", "thebump.com",
    "plannedparenthood.org", "fertilityiq.com",
    "cvs.com/pharmacy", "walgreens.com/pharmacy", "capsule.com",
    "alto.com", "pillpack.com",
    "questdiagnostics.com", "labcorp.com",
    "cancer.org", "diabetes.org", "heart.org",
    "alz.org", "epilepsy.com",
]

FINANCE_DOMAINS = [
    "chase.com", "bankofamerica.com", "wellsfargo.com", "citi.com",
    "usbank.com", "pnc.com", "tdbank.com", "capitalone.com",
    "ally.com", "discover.com", "marcus.com", "synchrony.com",
    "sofi.com", "chime.com", "current.com", "varo.com",
    "schwab.com", "fidelity.com", "vanguard.com", "etrade.com",
    "tdameritrade.com", "robinhood.com", "webull.com", "m1finance.com",
    "interactivebrokers.com", "tastyworks.com", "tradestation.com",
    "coinbase.com", "binance.com", "kraken.com", "gemini.com",
    "crypto.com", "ftx.com", "kucoin.com", "bitfinex.com",
    "bitstamp.net", "gate.io",
    "turbotax.com", "hrblock.com", "taxact.com", "freetaxusa.com",
    "irs.gov", "ssa.gov",
    "creditkarma.com", "experian.com", "equifax.com", "transunion.com",
    "annualcreditreport.com", "myfico.com",
    "paypal.com", "venmo.com", "zelle.com", "cashapp.com",
    "stripe.com/dashboard", "plaid.com",
    "geico.com", "progressive.com", "statefarm.com", "allstate.com",
    "lemonade.com", "policygenius.com",
    "lendingtree.com", "rocket.com", "better.com", "sofi.com/loans",
    "upstart.com", "prosper.com", "lendingclub.com",
]

DRUGS_DOMAINS = [
    "leafly.com", "weedmaps.com", "dutchie.com", "iheartjane.com",
    "eaze.com", "stiiizy.com", "curaleaf.com", "trulieve.com",
    "crescolabs.com", "greenthumbindustries.com",
    "erowid.org", "bluelight.org", "drugs-forum.com",
    "psychonautwiki.org", "tripsit.me",
    "juul.com", "njoy.com", "vaporfi.com", "elementvape.com",
    "nootropicsdepot.com", "ceretropic.com",
]

WEAPONS_DOMAINS = [
    "budsgunshop.com", "palmettostatearmory.com", "brownells.com",
    "midwayusa.com", "cheaperthandirt.com", "ammo.com",
    "luckygunner.com", "sgammo.com", "natchezss.com",
    "grabagun.com", "gunbroker.com", "armslist.com",
    "bladehq.com", "knifecenter.com", "benchmade.com",
    "smith-wesson.com", "glock.com", "sigsauer.com",
    "ruger.com", "beretta.com", "colt.com", "remington.com",
    "springfield-armory.com", "danieldefense.com",
    "nra.org", "ar15.com", "thefirearmblog.com",
]

PIRACY_DOMAINS = [
    "thepiratebay.org", "1337x.to", "rarbg.to", "nyaa.si",
    "yts.mx", "torrentgalaxy.to", "limetorrents.info",
    "torrentz2.eu", "eztv.re", "rutracker.org",
    "fitgirl-repacks.site", "dodi-repacks.site",
    "fmovies.to", "123movies.la", "putlocker.vip",
    "solarmovie.pe", "gomovies.sx", "soap2day.to",
    "bflix.to", "flixtor.to", "hdtoday.tv",
    "crackstreams.is", "sportsurge.net", "buffstreams.tv",
    "totalsportek.com", "firstrowsports.eu",
    "gogoanime.tel", "9anime.to", "animixplay.to",
    "zoro.to", "animepahe.com",
    "getintopc.com", "filecr.com",
    "mega.nz", "rapidgator.net", "uploaded.net", "nitroflare.com",
]

VPN_PROXY_DOMAINS = [
    "nordvpn.com", "expressvpn.com", "surfshark.com", "cyberghostvpn.com",
    "protonvpn.com", "privateinternetaccess.com", "mullvad.net",
    "windscribe.com", "hide.me", "purevpn.com", "ipvanish.com",
    "strongvpn.com", "tunnelbear.com", "hotspotshield.com",
    "avast.com/secureline-vpn", "norton.com/products/norton-secure-vpn",
    "hidemyass.com", "kproxy.com", "proxysite.com",
    "whoer.net", "browserleaks.com",
    "nextdns.io", "controld.com",
]

JOB_SEARCH_DOMAINS = [
    "linkedin.com/jobs", "indeed.com", "glassdoor.com",
    "ziprecruiter.com", "monster.com", "careerbuilder.com",
    "dice.com", "hired.com", "angel.co/jobs", "wellfound.com",
    "levels.fyi", "blind.com", "teamblind.com",
    "upwork.com", "fiverr.com", "toptal.com", "freelancer.com",
    "weworkremotely.com", "remoteok.com", "flexjobs.com",
    "remote.co", "workingnomads.co",
    "salary.com", "payscale.com", "comparably.com",
    "leetcode.com", "hackerrank.com", "interviewbit.com",
    "usajobs.gov",
]

SOCIAL_PERSONAL_DOMAINS = [
    "reddit.com/r/tifu", "reddit.com/r/confessions",
    "reddit.com/r/relationship_advice", "reddit.com/r/amitheasshole",
    "reddit.com/r/offmychest", "reddit.com/r/unpopularopinion",
    "whisper.sh", "postsecret.com",
    "tmz.com", "perezhilton.com", "dlisted.com",
    "deuxmoi.com", "crazydaysandnights.net",
    "craigslist.org/personals",
    "co-star.com", "astro.com", "kasamba.com", "keen.com",
    "california-psychics.com",
    "yikyak.com",
]

# Email click-tracker redirect hops; suffix matching covers per-account subdomains.
TRACKER_DOMAINS = [
    "ct.sendgrid.net",
    "list-manage.com", "mandrillapp.com", "mailchi.mp",
    "rs6.net",
    "hubspotemail.net", "hsms06.com", "hs-email.click",
    "exacttarget.com", "exct.net", "pardot.com",
    "acemlna.com", "acemlnb.com", "acemlnc.com", "acemlnd.com", "activehosted.com",
    "click.marketo.com", "mktoweb.com",
    "createsend.com",
    "klaviyomail.com",
    "click.braze.com", "link.braze.com",
    "click.iterable.com", "links.iterable.com",
    "convertkit-mail.com", "convertkit-mail2.com", "convertkit-mail3.com",
    "pstmrk.it",
    "link.e.sailthru.com",
    "messaginganalytics.athena.io",
]

AUTH_DOMAINS = [
    "accounts.google.com",
    "login.microsoftonline.com", "login.live.com", "login.windows.net",
    "account.microsoft.com",
    "appleid.apple.com", "idmsa.apple.com",
    "login.salesforce.com",
    "github.com/login/oauth",
    "myidentity.platform.athenahealth.com", "identity.athenahealth.com",
    "okta.com",
    "auth0.com",
    "sso.google.com",
]


class CategoryInfo(BaseModel):
    """Display metadata and domain list for one sensitivity category."""

    label: str
    description: str
    domains: list[str] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.domains)


CATEGORY_REGISTRY: dict[SensitivityCategory, CategoryInfo] = {
    SensitivityCategory.ADULT: CategoryInfo(
        label="Adult Content",
        description="Adult entertainment, explicit content, escort services",
        domains=ADULT_DOMAINS,
    ),
    SensitivityCategory.GAMBLING: CategoryInfo(
        label="Gambling & Betting",
        description="Online casinos, sportsbooks, lotteries, crypto gambling",
        domains=GAMBLING_DOMAINS,
    ),
    SensitivityCategory.DATING: CategoryInfo(
        label="Dating & Relationships",
        description="Dating apps, matchmaking, hookup platforms",
        domains=DATING_DOMAINS,
    ),
    SensitivityCategory.HEALTH: CategoryInfo(
        label="Health & Medical",
        description="Patient portals, telehealth, prescriptions, mental health, insurance",
        domains=HEALTH_DOMAINS,
    ),
    SensitivityCategory.FINANCE: CategoryInfo(
        label="Banking & Finance",
        description="Banks, brokerages, crypto exchanges, tax, credit, insurance, loans",
        domains=FINANCE_DOMAINS,
    ),
    SensitivityCategory.DRUGS: CategoryInfo(
        label="Drugs & Substances",
        description="Cannabis dispensaries, drug info, vaping, nootropics",
        domains=DRUGS_DOMAINS,
    ),
    SensitivityCategory.WEAPONS: CategoryInfo(
        label="Weapons & Firearms",
        description="Gun retailers, ammunition, tactical gear, firearms forums",
        domains=WEAPONS_DOMAINS,
    ),
    SensitivityCategory.PIRACY: CategoryInfo(
        label="Piracy & Torrents",
        description="Torrent sites, pirated streaming, cracked software",
        domains=PIRACY_DOMAINS,
    ),
    SensitivityCategory.VPN_PROXY: CategoryInfo(
        label="VPN & Proxy",
        description="VPN services, proxy tools, DNS privacy",
        domains=VPN_PROXY_DOMAINS,
    ),
    SensitivityCategory.JOB_SEARCH: CategoryInfo(
        label="Job Search",
        description="Job boards, salary info, interview prep, freelance platforms",
        domains=JOB_SEARCH_DOMAINS,
    ),
    SensitivityCategory.SOCIAL_PERSONAL: CategoryInfo(
        label="Personal & Sensitive Social",
        description="Confessional forums, gossip, astrology, personal ads",
        domains=SOCIAL_PERSONAL_DOMAINS,
    ),
    SensitivityCategory.TRACKER: CategoryInfo(
        label="Email Trackers",
        description="Email marketing click-tracker redirects with no browsable content",
        domains=TRACKER_DOMAINS,
    ),
    SensitivityCategory.AUTH: CategoryInfo(
        label="Auth / SSO Flows",
        description="OAuth consent screens and identity-provider login pages",
        domains=AUTH_DOMAINS,
    ),
    SensitivityCategory.CUSTOM: CategoryInfo(
        label="Custom",
        description="Your personal exclusion list",
    ),
}


def category_label(category: SensitivityCategory) -> str:
    return CATEGORY_REGISTRY[category].label


def total_builtin_domains() -> int:
    return sum(info.count for info in CATEGORY_REGISTRY.values())


# =============================================================================
# Matcher
# =============================================================================


def _normalize_host(hostname: str) -> str:
    h = hostname.strip().lower().rstrip(".")
    return h[4:] if h.startswith("www.") else h


@dataclass
class DomainMatcher:
    """Lookup structure built from enabled categories and custom entries.

    Attributes:
        exact_domains: Domain → category for entries without a path.
        path_prefixes: Domain → list of (path prefix, category), in the
            order entries were added.
    """

    exact_domains: dict[str, SensitivityCategory] = field(default_factory=dict)
    path_prefixes: dict[str, list[tuple[str, SensitivityCategory]]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: SensitivityConfig) -> "DomainMatcher":
        matcher = cls()
        for category in config.categories:
            if category is SensitivityCategory.CUSTOM:
                continue
            for entry in CATEGORY_REGISTRY[category].domains:
                matcher.add(entry, category)
        for entry in config.custom_domains:
            matcher.add(entry, SensitivityCategory.CUSTOM)
        return matcher

    def add(self, raw: str, category: SensitivityCategory) -> None:
        entry = raw.strip().lower()
        if not entry:
            return
        slash = entry.find("/")
        if slash > 0:
            domain = _normalize_host(entry[:slash])
            prefix = entry[slash:]
            self.path_prefixes.setdefault(domain, []).append((prefix, category))
        else:
            # First registration wins when categories overlap
            self.exact_domains.setdefault(_normalize_host(entry), category)

    def match(self, hostname: str, path: str = "/") -> SensitivityCategory | None:
        """Return the category of the first matching entry, or None."""
        host = _normalize_host(hostname)
        if not host:
            return None

        category = self.exact_domains.get(host)
        if category is not None:
            return category

        for domain, category in self.exact_domains.items():
            if host.endswith("." + domain):
                return category

        lower_path = (path or "/").lower()
        for prefix, category in self.path_prefixes.get(host, []):
            if lower_path.startswith(prefix):
                return category

        for domain, prefixes in self.path_prefixes.items():
            if host.endswith("." + domain):
                for prefix, category in prefixes:
                    if lower_path.startswith(prefix):
                        return category

        return None

    def match_text(self, text: str) -> SensitivityCategory | None:
        """Return the category of the first exact domain contained in ``text``."""
        lowered = text.lower()
        for domain, category in self.exact_domains.items():
            if domain in lowered:
                return category
        return None

    def __len__(self) -> int:
        return len(self.exact_domains) + sum(len(p) for p in self.path_prefixes.values())


# =============================================================================
# Filter Functions
# =============================================================================


class SensitivityFilterResult(BaseModel):
    """Visits left after filtering plus exact per-category counts."""

    kept: list[BrowserVisit] = Field(default_factory=list)
    filtered: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)


class SearchFilterResult(BaseModel):
    kept: list[SearchQuery] = Field(default_factory=list)
    filtered: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)


def filter_sensitive_visits(
    visits: list[BrowserVisit],
    config: SensitivityConfig,
    matcher: DomainMatcher | None = None,
) -> SensitivityFilterResult:
    """Exclude or redact visits to sensitive domains.

    Redaction keeps the record count and replaces the URL with
    ``https://<host>/[FILTERED]`` and the title with the category label.
    Visits whose URL cannot be parsed are kept unchanged.

    Args:
        visits: Visits to filter.
        config: Sensitivity settings.
        matcher: Prebuilt matcher; built from ``config`` when omitted.

    Returns:
        SensitivityFilterResult with kept visits and exact counts.
    """
    if not config.is_active:
        return SensitivityFilterResult(kept=list(visits))

    matcher = matcher or DomainMatcher.from_config(config)
    result = SensitivityFilterResult()

    for visit in visits:
        try:
            parts = urlsplit(visit.url)
            hostname = parts.hostname
        except ValueError:
            result.kept.append(visit)
            continue
        if not hostname:
            result.kept.append(visit)
            continue

        category = matcher.match(hostname, parts.path)
        if category is None:
            result.kept.append(visit)
            continue

        result.filtered += 1
        result.by_category[category.value] = result.by_category.get(category.value, 0) + 1

        if config.action is FilterAction.REDACT:
            result.kept.append(
                visit.model_copy(
                    update={
                        "url": f"https://{hostname}/{FILTERED_PATH}",
                        "title": f"[{category_label(category)}]",
                        "domain": hostname,
                    }
                )
            )

    if result.filtered:
        logger.info(
            f"Sensitivity filter matched {result.filtered} of {len(visits)} visits "
            f"({config.action.value})"
        )
    return result


def filter_sensitive_searches(
    searches: list[SearchQuery],
    config: SensitivityConfig,
    matcher: DomainMatcher | None = None,
) -> SearchFilterResult:
    """Exclude or redact searches that mention a sensitive domain.

    A query matches when any configured exact domain appears as a substring
    of the lower-cased query text.
    """
    if not config.is_active:
        return SearchFilterResult(kept=list(searches))

    matcher = matcher or DomainMatcher.from_config(config)
    result = SearchFilterResult()

    for search in searches:
        category = matcher.match_text(search.query)
        if category is None:
            result.kept.append(search)
            continue

        result.filtered += 1
        result.by_category[category.value] = result.by_category.get(category.value, 0) + 1
        if config.action is FilterAction.REDACT:
            result.kept.append(search.model_copy(update={"query": SENSITIVE_SEARCH}))

    return result
