"""Country name to CEAC option code table shared by every step."""

from __future__ import annotations

from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

_COUNTRY_CODES = {
    "AFGHANISTAN": "AFGH",
    "ALBANIA": "ALB",
    "ALGERIA": "ALGR",
    "AMERICAN SAMOA": "ASMO",
    "ANDORRA": "ANDO",
    "ANGOLA": "ANGL",
    "ANGUILLA": "ANGU",
    "ANTIGUA AND BARBUDA": "ANTI",
    "ARGENTINA": "ARG",
    "ARMENIA": "ARM",
    "ARUBA": "ARB",
    "AT SEA": "XAS",
    "AUSTRALIA": "ASTL",
    "AUSTRIA": "AUST",
    "AZERBAIJAN": "AZR",
    "BAHAMAS": "BAMA",
    "BAHRAIN": "BAHR",
    "BANGLADESH": "BANG",
    "BARBADOS": "BRDO",
    "BELARUS": "BYS",
    "BELGIUM": "BELG",
    "BELIZE": "BLZ",
    "BENIN": "BENN",
    "BERMUDA": "BERM",
    "BHUTAN": "BHU",
    "BOLIVIA": "BOL",
    "BOSNIA-HERZEGOVINA": "BIH",
    "BOTSWANA": "BOT",
    "BRAZIL": "BRZL",
    "BRITISH INDIAN OCEAN TERRITORY": "IOT",
    "BRUNEI": "BRNI",
    "BULGARIA": "BULG",
    "BURKINA FASO": "BURK",
    "BURMA": "BURM",
    "BURUNDI": "BRND",
    "CAMBODIA": "CBDA",
    "CAMEROON": "CMRN",
    "CANADA": "CAN",
    "CABO VERDE": "CAVI",
    "CAYMAN ISLANDS": "CAYI",
    "CENTRAL AFRICAN REPUBLIC": "CAFR",
    "CHAD": "CHAD",
    "CHILE": "CHIL",
    "CHINA": "CHIN",
    "CHRISTMAS ISLAND": "CHRI",
    "COCOS KEELING ISLANDS": "COCI",
    "COLOMBIA": "COL",
    "COMOROS": "COMO",
    "CONGO, DEMOCRATIC REPUBLIC OF THE": "COD",
    "CONGO, REPUBLIC OF THE": "CONB",
    "COOK ISLANDS": "CKIS",
    "COSTA RICA": "CSTR",
    "COTE D`IVOIRE": "IVCO",
    "CROATIA": "HRV",
    "CUBA": "CUBA",
    "CURACAO": "CUR",
    "CYPRUS": "CYPR",
    "CZECH REPUBLIC": "CZEC",
    "DENMARK": "DEN",
    "DJIBOUTI": "DJI",
    "DOMINICA": "DOMN",
    "DOMINICAN REPUBLIC": "DOMR",
    "ECUADOR": "ECUA",
    "EGYPT": "EGYP",
    "EL SALVADOR": "ELSL",
    "EQUATORIAL GUINEA": "EGN",
    "ERITREA": "ERI",
    "ESTONIA": "EST",
    "ESWATINI": "SZLD",
    "ETHIOPIA": "ETH",
    "FALKLAND ISLANDS": "FKLI",
    "FAROE ISLANDS": "FRO",
    "FIJI": "FIJI",
    "FINLAND": "FIN",
    "FRANCE": "FRAN",
    "FRENCH POLYNESIA": "FPOL",
    "FRENCH SOUTHERN AND ANTARCTIC TERRITORIES": "FSAT",
    "GABON": "GABN",
    "GAMBIA, THE": "GAM",
    "GAZA STRIP": "XGZ",
    "GEORGIA": "GEO",
    "GERMANY": "GER",
    "GHANA": "GHAN",
    "GIBRALTAR": "GIB",
    "GREECE": "GRC",
    "GREENLAND": "GRLD",
    "GRENADA": "GREN",
    "GUAM": "GUAM",
    "GUATEMALA": "GUAT",
    "GUINEA": "GNEA",
    "GUINEA - BISSAU": "GUIB",
    "GUYANA": "GUY",
    "HAITI": "HAT",
    "HEARD AND MCDONALD ISLANDS": "HMD",
    "HOLY SEE (VATICAN CITY)": "VAT",
    "HONDURAS": "HOND",
    "HONG KONG BNO": "HOKO",
    "HONG KONG SAR": "HNK",
    "HOWLAND ISLAND": "XHI",
    "HUNGARY": "HUNG",
    "ICELAND": "ICLD",
    "IN THE AIR": "XIR",
    "INDIA": "IND",
    "INDONESIA": "IDSA",
    "IRAN": "IRAN",
    "IRAQ": "IRAQ",
    "IRELAND": "IRE",
    "ISRAEL": "ISRL",
    "ITALY": "ITLY",
    "JAMAICA": "JAM",
    "JAPAN": "JPN",
    "JERUSALEM": "JRSM",
    "JORDAN": "JORD",
    "KAZAKHSTAN": "KAZ",
    "KENYA": "KENY",
    "KIRIBATI": "KIRI",
    "KOREA, DEMOCRATIC REPUBLIC OF (NORTH)": "PRK",
    "KOREA, REPUBLIC OF (SOUTH)": "KOR",
    "KOSOVO": "KSV",
    "KUWAIT": "KUWT",
    "KYRGYZSTAN": "KGZ",
    "LAOS": "LAOS",
    "LATVIA": "LATV",
    "LEBANON": "LEBN",
    "LESOTHO": "LES",
    "LIBERIA": "LIBR",
    "LIBYA": "LBYA",
    "LIECHTENSTEIN": "LCHT",
    "LITHUANIA": "LITH",
    "LUXEMBOURG": "LXM",
    "MACAU": "MAC",
    "MACEDONIA, NORTH": "MKD",
    "MADAGASCAR": "MADG",
    "MALAWI": "MALW",
    "MALAYSIA": "MLAS",
    "MALDEN ISLAND": "MLDI",
    "MALDIVES": "MLDV",
    "MALI": "MALI",
    "MALTA": "MLTA",
    "MARSHALL ISLANDS": "RMI",
    "MAURITANIA": "MAUR",
    "MAURITIUS": "MRTS",
    "MAYOTTE": "MYT",
    "MICRONESIA": "FSM",
    "MIDWAY ISLANDS": "MDWI",
    "MOLDOVA": "MLD",
    "MONACO": "MON",
    "MONGOLIA": "MONG",
    "MONTENEGRO": "MTG",
    "MONTSERRAT": "MONT",
    "MOROCCO": "MORO",
    "MOZAMBIQUE": "MOZ",
    "NAMIBIA": "NAMB",
    "NAURU": "NAU",
    "NEPAL": "NEP",
    "NETHERLANDS": "NETH",
    "NEW CALEDONIA": "NCAL",
    "NEW ZEALAND": "NZLD",
    "NICARAGUA": "NIC",
    "NIGER": "NIR",
    "NIGERIA": "NRA",
    "NIUE": "NIUE",
    "NORFOLK ISLAND": "NFK",
    "NORTH MARIANA ISLANDS": "MNP",
    "NORTHERN IRELAND": "NIRE",
    "NORWAY": "NORW",
    "OMAN": "OMAN",
    "PAKISTAN": "PKST",
    "PALAU": "PALA",
    "PALMYRA ATOLL": "PLMR",
    "PANAMA": "PAN",
    "PAPUA NEW GUINEA": "PNG",
    "PARAGUAY": "PARA",
    "PERU": "PERU",
    "PHILIPPINES": "PHIL",
    "PITCAIRN ISLANDS": "PITC",
    "POLAND": "POL",
    "PORTUGAL": "PORT",
    "PUERTO RICO": "PR",
    "QATAR": "QTAR",
    "ROMANIA": "ROM",
    "RUSSIA": "RUS",
    "RWANDA": "RWND",
    "SAINT MARTIN": "MAF",
    "SAMOA": "WSAM",
    "SAN MARINO": "SMAR",
    "SAO TOME AND PRINCIPE": "STPR",
    "SAUDI ARABIA": "SARB",
    "SENEGAL": "SENG",
    "SERBIA": "SBA",
    "SEYCHELLES": "SEYC",
    "SIERRA LEONE": "SLEO",
    "SINGAPORE": "SING",
    "SINT MAARTEN": "STM",
    "SLOVAKIA": "SVK",
    "SLOVENIA": "SVN",
    "SOLOMON ISLANDS": "SLMN",
    "SOMALIA": "SOMA",
    "SOUTH AFRICA": "SAFR",
    "SOUTH GEORGIA AND THE SOUTH SANDWICH ISLAND": "SGS",
    "SOUTH SUDAN": "SSDN",
    "SPAIN": "SPN",
    "SRI LANKA": "SRL",
    "ST. BARTHELEMY": "STBR",
    "ST. HELENA": "SHEL",
    "ST. KITTS AND NEVIS": "STCN",
    "ST. LUCIA": "SLCA",
    "ST. PIERRE AND MIQUELON": "SPMI",
    "ST. VINCENT AND THE GRENADINES": "STVN",
    "SUDAN": "SUDA",
    "SURINAME": "SURM",
    "SVALBARD": "SJM",
    "SWEDEN": "SWDN",
    "SWITZERLAND": "SWTZ",
    "SYRIA": "SYR",
    "TAIWAN": "TWAN",
    "TAJIKISTAN": "TJK",
    "TANZANIA": "TAZN",
    "THAILAND": "THAI",
    "TIMOR-LESTE": "TMOR",
    "TOGO": "TOGO",
    "TOKELAU": "TKL",
    "TONGA": "TONG",
    "TRINIDAD AND TOBAGO": "TRIN",
    "TUNISIA": "TNSA",
    "TURKEY": "TRKY",
    "TURKMENISTAN": "TKM",
    "TURKS AND CAICOS ISLANDS": "TCIS",
    "TUVALU": "TUV",
    "UGANDA": "UGAN",
    "UKRAINE": "UKR",
    "UNITED ARAB EMIRATES": "UAE",
    "UNITED KINGDOM": "GRBR",
    "UNITED STATES OF AMERICA": "USA",
    "URUGUAY": "URU",
    "UZBEKISTAN": "UZB",
    "VANUATU": "VANU",
    "VENEZUELA": "VENZ",
    "VIETNAM": "VTNM",
    "VIRGIN ISLANDS (U.S.)": "VI",
    "VIRGIN ISLANDS, BRITISH": "BRVI",
    "WAKE ISLAND": "WKI",
    "WALLIS AND FUTUNA ISLANDS": "WAFT",
    "WEST BANK": "XWB",
    "WESTERN SAHARA": "SSAH",
    "YEMEN": "YEM",
    "ZAMBIA": "ZAMB",
    "ZIMBABWE": "ZIMB",
}

_ALIASES = {
    "USA": "UNITED STATES OF AMERICA",
    "UNITED STATES": "UNITED STATES OF AMERICA",
    "US": "UNITED STATES OF AMERICA",
    "UK": "UNITED KINGDOM",
    "GREAT BRITAIN": "UNITED KINGDOM",
    "SOUTH KOREA": "KOREA, REPUBLIC OF (SOUTH)",
    "NORTH KOREA": "KOREA, DEMOCRATIC REPUBLIC OF (NORTH)",
    "UAE": "UNITED ARAB EMIRATES",
    "MYANMAR": "BURMA",
    "CAPE VERDE": "CABO VERDE",
    "IVORY COAST": "COTE D`IVOIRE",
    "NORTH MACEDONIA": "MACEDONIA, NORTH",
    "SWAZILAND": "ESWATINI",
    "HONG KONG": "HONG KONG SAR",
}


@lru_cache(maxsize=1)
def country_table() -> Mapping[str, str]:
    """Return the read-only name -> code table, aliases included."""
    table = dict(_COUNTRY_CODES)
    for alias, name in _ALIASES.items():
        table.setdefault(alias, _COUNTRY_CODES[name])
    return MappingProxyType(table)


def lookup_country_code(value: str) -> str | None:
    """Resolve a country name (or an already valid code) to its CEAC code."""
    normalized = " ".join(str(value or "").upper().split())
    if not normalized:
        return None
    table = country_table()
    if normalized in table:
        return table[normalized]
    if normalized in _COUNTRY_CODES.values():
        return normalized
    return None
