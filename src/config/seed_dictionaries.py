"""Static category knowledge used to generate and filter keyword candidates.

# ─── PURPOSE ──────────────────────────────────────────────────────────
#
# Every keyword the growth engine sends to the volume API must be
# recognisably about the category.  The tables here give the generator its
# raw material and the guard its yardstick:
#
#   - HEAD_TERMS       the product nouns of a category ("razor", "shave gel")
#   - BRAND_PACKS      brands sold in the category, strongest first
#   - PROBLEM_PHRASES  need-state searches used as discovery seeds
#   - word lists       generic / commerce / stop / excluded tokens
#
# All functions are pure.  config/config.yaml may extend any category
# (or add a new one) under ``seed_dictionaries``; see build_seed_catalog().
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from src.utils.text_normalizer import normalize_keyword


# ═════════════════════════════════════════════════════════════════════════
# 1. HEAD TERMS
# ═════════════════════════════════════════════════════════════════════════

HEAD_TERMS: dict[str, list[str]] = {
    "shaving": [
        "shaving", "shave", "razor", "blade", "cartridge", "trimmer", "foam",
        "gel", "cream", "lather", "safety razor", "electric shaver",
        "aftershave", "pre shave",
    ],
    "beard": [
        "beard", "mustache", "moustache", "stubble", "goatee", "growth oil",
        "trimmer", "softener", "wash", "wax", "balm", "beard color",
    ],
    "hair-styling": [
        "hair wax", "hair gel", "pomade", "styling", "clay", "putty", "paste",
        "hair spray", "hair cream", "mousse", "volumizer", "styling wax",
    ],
    "sexual-wellness": [
        "condom", "lube", "lubricant", "delay spray", "climax", "stamina",
        "erection", "performance", "protection", "contraceptive",
    ],
    "intimate-hygiene": [
        "intimate wash", "hygiene wash", "balls", "groin", "pubic",
        "anti chafing", "sweat powder", "fungal", "itch", "private part",
        "intimate hygiene",
    ],
    "hair-colour": [
        "hair colour", "hair color", "hair dye", "grey", "gray",
        "root touch up", "shampoo colour", "black hair", "brown hair",
        "grey coverage", "ammonia free",
    ],
    "face-care": [
        "face wash", "moisturizer", "sunscreen", "scrub", "serum", "acne",
        "pimple", "face cream", "cleanser", "exfoliator", "tan removal",
        "face mask", "face gel",
    ],
    "deodorants": [
        "deodorant", "deo", "perfume", "body spray", "fragrance", "scent",
        "cologne", "roll on", "antiperspirant", "oud", "musk", "body mist",
    ],
    "hair-oil": [
        "hair oil", "scalp oil", "hair growth", "hair fall", "dandruff",
        "coconut oil", "almond oil", "onion oil", "ayurvedic oil",
        "anti hair fall", "hair tonic",
    ],
    "fragrance-premium": [
        "perfume", "parfum", "edt", "edp", "fragrance", "scent", "luxury",
        "designer", "gift set", "cologne", "attar",
    ],
    "skincare-spec": [
        "serum", "retinol", "vitamin c", "niacinamide", "hyaluronic",
        "eye cream", "dark circle", "pigmentation", "anti aging", "face serum",
    ],
    "shampoo": [
        "shampoo", "conditioner", "cleanser", "scalp", "dandruff", "hair wash",
        "hair fall shampoo", "keratin", "anti dandruff",
    ],
    "soap": [
        "soap", "body wash", "shower gel", "bathing bar", "cleansing bar",
        "bath soap", "body cleanser",
    ],
    "body-lotion": [
        "body lotion", "body cream", "moisturizer", "vaseline", "cocoa butter",
        "shea butter", "winter cream", "skin lotion", "body milk",
    ],
    "talcum": [
        "talcum", "talc", "powder", "cool powder", "prickly heat",
        "dusting powder", "body powder", "sweat powder",
    ],
    "oral-care": [
        "toothpaste", "toothbrush", "mouthwash", "floss", "breath",
        "whitening", "gum", "tooth brush", "oral care", "fresh breath",
    ],
}


# ═════════════════════════════════════════════════════════════════════════
# 2. BRAND PACKS
# ═════════════════════════════════════════════════════════════════════════
# Ordered by market presence; the generator only uses the head of each list.

BRAND_PACKS: dict[str, list[str]] = {
    "shaving": [
        "gillette", "philips", "panasonic", "syska", "braun", "havells",
        "bombay shaving company", "beardo", "the man company", "park avenue",
        "supermax", "denver", "vi john", "old spice", "set wet", "ustraa",
        "zlade", "spruce",
    ],
    "beard": [
        "beardo", "bombay shaving company", "the man company", "ustraa",
        "park avenue", "vi john", "set wet", "denver", "wild stone",
        "garnier men", "streax", "indica men", "just for men", "loreal men",
        "urban gabru",
    ],
    "hair-styling": [
        "set wet", "park avenue", "garnier men", "loreal men", "denver",
        "wild stone", "beardo", "ustraa", "gatsby", "streax", "schwarzkopf",
        "nivea men", "arata", "urban gabru",
    ],
    "sexual-wellness": [
        "manforce", "durex", "skore", "kamasutra", "bold care", "muscle blaze",
        "himalaya wellness", "healthkart", "moods", "playgard",
    ],
    "intimate-hygiene": [
        "pee safe", "sirona", "man matters", "the man company", "ustraa",
        "bombay shaving company", "wow skin science", "svish", "nuutjob",
        "skin elements",
    ],
    "hair-colour": [
        "loreal", "garnier", "streax", "indica", "godrej expert", "revlon",
        "schwarzkopf", "bigen", "just for men", "matrix", "parachute",
        "vatika", "blunt",
    ],
    "face-care": [
        "nivea men", "garnier men", "loreal men", "ponds men",
        "the man company", "beardo", "ustraa", "bombay shaving company",
        "wow skin science", "mamaearth", "plum", "mcb", "cetaphil",
        "minimalist", "derma co",
    ],
    "deodorants": [
        "axe", "park avenue", "fogg", "wild stone", "denver", "engage",
        "yardley", "nivea men", "old spice", "set wet", "villain", "he",
        "cobra", "brut",
    ],
    "hair-oil": [
        "parachute", "indulekha", "bajaj almond drops", "kesh king", "vatika",
        "dabur amla", "wow skin science", "khadi", "biotique", "navratna",
        "emami", "himalaya",
    ],
    "fragrance-premium": [
        "titan skinn", "villain", "beardo", "ustraa", "the man company",
        "ajmal", "armaf", "rasasi", "davidoff", "calvin klein", "versace",
        "bellavita", "wild stone edge", "embark",
    ],
    "skincare-spec": [
        "minimalist", "derma co", "ordinary", "biotique", "plum", "wow",
        "mcaffeine", "dot & key", "chemist at play", "pilgrim", "dr sheth",
        "neutrogena",
    ],
    "shampoo": [
        "head and shoulders", "loreal", "tresemme", "clinic plus", "pantene",
        "wow skin science", "biotique", "khadi", "dove", "nivea men",
        "beer shampoo", "park avenue",
    ],
    "soap": [
        "dove", "lux", "pears", "nivea men", "yardley", "fiama", "dettol",
        "lifebuoy", "park avenue", "cinthol", "medimix", "mysore sandal",
        "wild stone",
    ],
    "body-lotion": [
        "nivea men", "vaseline", "ponds", "dove", "joy", "biotique",
        "wow skin science", "plum", "himalaya", "cocoa butter", "boroplus",
        "parachute",
    ],
    "talcum": [
        "ponds", "yardley", "park avenue", "wild stone", "denver", "engage",
        "nivea men", "fiama", "cinthol", "navratna", "dermicool", "nycil",
    ],
    "oral-care": [
        "colgate", "pepsodent", "closeup", "sensodyne", "oral b", "dabur red",
        "patanjali", "vicco", "meswak", "himalaya", "listerine", "clove",
    ],
}


# ═════════════════════════════════════════════════════════════════════════
# 3. PROBLEM PHRASES (need-state discovery seeds)
# ═════════════════════════════════════════════════════════════════════════

PROBLEM_PHRASES: dict[str, list[str]] = {
    "shaving": [
        "razor burn remedy", "ingrown hair after shaving",
        "how to shave without cuts", "shaving rash treatment",
        "smooth shave tips",
    ],
    "beard": [
        "patchy beard growth", "beard itch remedy", "how to grow thick beard",
        "beard dandruff treatment", "grey beard dye",
    ],
    "hair-styling": [
        "hair fall from gel", "hairstyle for thin hair men",
        "how to style hair without damage", "hair wax vs gel",
        "matte finish hair",
    ],
    "sexual-wellness": [
        "premature ejaculation solution", "condom size guide",
        "sexual stamina tips", "delay spray side effects", "best lubricant",
    ],
    "intimate-hygiene": [
        "jock itch treatment", "groin sweat solution",
        "intimate area darkening", "anti chafing cream men", "ball powder men",
    ],
    "hair-colour": [
        "ammonia free hair colour men", "grey hair coverage shampoo",
        "how to colour hair at home men", "semi permanent hair colour",
        "natural hair dye",
    ],
    "face-care": [
        "oily face control men", "dark spots removal men",
        "pimple treatment for men", "sunscreen for men oily skin",
        "face moisturizer men dry skin",
    ],
    "deodorants": [
        "body odour solution", "long lasting deo men", "deodorant vs perfume",
        "antiperspirant for heavy sweating", "natural deodorant men",
    ],
    "hair-oil": [
        "hair fall control oil", "dandruff oil treatment",
        "non sticky hair oil men", "ayurvedic hair oil",
        "onion oil for hair growth",
    ],
    "fragrance-premium": [
        "long lasting perfume men", "perfume vs eau de toilette",
        "office wear fragrance men", "date night perfume",
        "budget luxury perfume india",
    ],
    "skincare-spec": [
        "vitamin c serum for men", "retinol for beginners",
        "dark circle cream men", "anti aging cream men 30s",
        "niacinamide benefits for men",
    ],
    "shampoo": [
        "anti dandruff shampoo men", "shampoo for hair fall men",
        "sulphate free shampoo", "dry scalp treatment shampoo",
        "shampoo for oily hair men",
    ],
    "soap": [
        "body wash vs soap men", "antibacterial soap men",
        "moisturizing soap for men", "charcoal soap benefits",
        "soap for dry skin men",
    ],
    "body-lotion": [
        "body lotion for men dry skin", "non greasy body lotion",
        "winter moisturizer men", "body lotion vs cream",
        "cocoa butter lotion men",
    ],
    "talcum": [
        "prickly heat powder men", "talc free body powder",
        "cooling powder for summer", "anti sweat powder men",
        "talcum powder side effects",
    ],
    "oral-care": [
        "teeth whitening at home", "best electric toothbrush india",
        "sensitive teeth toothpaste", "mouthwash for bad breath",
        "activated charcoal toothpaste",
    ],
}


# ═════════════════════════════════════════════════════════════════════════
# 4. WORD LISTS
# ═════════════════════════════════════════════════════════════════════════

# Words that carry no category meaning on their own.  Multi-word entries
# ("near me", "how to") never match a single token and are kept for parity
# with the phrase lists used elsewhere.
GENERIC_WORDS: frozenset[str] = frozenset({
    "india", "online", "price", "review", "reviews", "offer", "offers",
    "benefit", "benefits", "best", "top", "cheap", "buy", "sale", "near me",
    "shop", "store", "cost", "how to", "what is", "2023", "2024", "2025",
    "2026", "2027", "vs", "compare", "list", "guide", "men", "for men",
    "shopping", "products",
})

STOPWORDS: frozenset[str] = frozenset({
    "in", "for", "the", "and", "to", "with", "of", "on", "at", "by",
})

# Words that make "brand + X" a purchase query rather than noise.
COMMERCE_WORDS: frozenset[str] = frozenset({
    "price", "cost", "buy", "online", "review", "reviews", "offer", "offers",
    "sale", "shop", "store", "best", "top", "products", "range", "combo",
    "kit", "new", "latest", "compare", "vs", "alternative", "near me",
})

# The corpus covers men's grooming; these tokens mark a different audience.
FEMALE_EXCLUSIONS: frozenset[str] = frozenset({
    "women", "womens", "woman", "female", "ladies", "girl", "girls", "she",
    "her", "bridal", "bride", "maternity", "pregnancy", "mom", "mother",
    "sister", "wife", "saree", "kurta", "lehenga", "makeup", "lipstick",
    "mascara", "foundation", "eyeliner", "blush", "bra", "panty", "lingerie",
    "sanitary", "period", "menstrual", "vagina", "vaginal",
})


# ═════════════════════════════════════════════════════════════════════════
# 5. INTENT & EXPANSION VOCABULARY
# ═════════════════════════════════════════════════════════════════════════

INTENT_DECISION_WORDS: frozenset[str] = frozenset(
    {"buy", "price", "offer", "online", "cost", "amazon", "shop"}
)
INTENT_CONSIDERATION_WORDS: frozenset[str] = frozenset(
    {"best", "review", "vs", "top", "better", "brand"}
)
INTENT_PROBLEM_WORDS: frozenset[str] = frozenset(
    {"burn", "irritation", "bump", "fix", "solution", "problem", "pain", "acne"}
)

# Appended to head terms to build discovery seeds.
DISCOVERY_MODIFIERS: tuple[str, ...] = (
    "price", "review", "vs", "alternative", "side effects", "how to use",
    "benefits", "for sensitive skin", "natural", "affordable", "premium",
    "recommended", "dermatologist",
)

# Heuristic anchor themes used by anchor expansion, in preference order.
ANCHOR_MODIFIERS: tuple[str, ...] = (
    "Price & Offers", "Best & Top Rated", "Reviews & Ratings", "How to Use",
    "Benefits & Features", "Side Effects", "For Sensitive Skin", "For Men",
    "Online Buy", "Kits & Combos", "Brands", "Alternatives",
)


# ═════════════════════════════════════════════════════════════════════════
# 6. CATALOG
# ═════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SeedDictionary:
    """Normalized knowledge for one category."""

    category_id: str
    head_terms: tuple[str, ...]
    brands: tuple[str, ...]
    problem_phrases: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.head_terms and not self.brands


def _normalized_unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        norm = normalize_keyword(value)
        if norm:
            seen.setdefault(norm, None)
    return tuple(seen)


def build_seed_catalog(
    extensions: Mapping[str, Mapping[str, list[str]]] | None = None,
) -> dict[str, SeedDictionary]:
    """Build the per-category catalog, appending any configured extensions.

    Args:
        extensions: ``{category_id: {"head_terms": [...], "brands": [...],
            "problem_phrases": [...]}}`` as read from config.yaml.  Extension
            terms are appended after the built-in ones so the generator's
            "top N" slices still favour the curated entries.

    Returns:
        Mapping of category id to :class:`SeedDictionary`.  Every entry is
        normalized with the same function used for keyword dedupe, so
        "dot & key" is stored as "dot key".
    """
    extensions = extensions or {}
    category_ids = list(HEAD_TERMS) + [c for c in extensions if c not in HEAD_TERMS]
    catalog: dict[str, SeedDictionary] = {}
    for category_id in category_ids:
        extra = extensions.get(category_id, {})
        catalog[category_id] = SeedDictionary(
            category_id=category_id,
            head_terms=_normalized_unique(
                [*HEAD_TERMS.get(category_id, []), *extra.get("head_terms", [])]
            ),
            brands=_normalized_unique(
                [*BRAND_PACKS.get(category_id, []), *extra.get("brands", [])]
            ),
            problem_phrases=_normalized_unique(
                [*PROBLEM_PHRASES.get(category_id, []), *extra.get("problem_phrases", [])]
            ),
        )
    return catalog


DEFAULT_CATALOG: dict[str, SeedDictionary] = build_seed_catalog()


def get_seed_dictionary(
    category_id: str,
    catalog: Mapping[str, SeedDictionary] | None = None,
) -> SeedDictionary:
    """Return the category's dictionary, or an empty one for unknown ids."""
    catalog = DEFAULT_CATALOG if catalog is None else catalog
    found = catalog.get(category_id)
    if found is not None:
        return found
    return SeedDictionary(category_id=category_id, head_terms=(), brands=(), problem_phrases=())


def default_anchor_names(
    category_id: str,
    count: int = 6,
    catalog: Mapping[str, SeedDictionary] | None = None,
) -> list[str]:
    """Anchor names for a fresh draft: the category's leading head terms."""
    heads = get_seed_dictionary(category_id, catalog).head_terms
    return [head.title() for head in heads[:count]]
