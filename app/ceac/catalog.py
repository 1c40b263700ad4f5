"""Static catalog of the CEAC pages the orchestrator walks, in order.

Step 1 is the embassy selection page (with the CAPTCHA), step 2 the
application-ID confirmation page, steps 3-19 the DS-160 pages proper.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Mapping

from app.ceac.models import (
    ConditionalRule,
    DateComponent,
    DatePart,
    DateRepresentation,
    FieldMapping,
    FieldType,
    KnownError,
    StepDefinition,
)

LOCATION_STEP = 1
APPLICATION_ID_STEP = 2
PERSONAL_2_STEP = 4

LOCATION_SELECT = "#ctl00_SiteContentPlaceHolder_ucLocation_ddlLocation"
START_APPLICATION_LINK = "#ctl00_SiteContentPlaceHolder_lnkNew"
APPLICATION_ID_LABEL = "#ctl00_SiteContentPlaceHolder_lblBarcode"
APPLICATION_DATE_LABEL = "#ctl00_SiteContentPlaceHolder_lblAppDate"
PRIVACY_CHECKBOX = "#ctl00_SiteContentPlaceHolder_chkbxPrivacyAct"
SECURITY_QUESTION_SELECT = "#ctl00_SiteContentPlaceHolder_ddlQuestions"
SECURITY_ANSWER_INPUT = "#ctl00_SiteContentPlaceHolder_txtAnswer"
CONTINUE_BUTTON = "#ctl00_SiteContentPlaceHolder_btnContinue"

YES_NO = {"Yes": "Y", "No": "N", "Y": "Y", "N": "N"}
STAY_UNITS = {"Year(s)": "Y", "Month(s)": "M", "Week(s)": "W", "Day(s)": "D"}


def _id(suffix: str) -> str:
    return f"#ctl00_SiteContentPlaceHolder_FormView1_{suffix}"


def text(key: str, suffix: str, *, required: bool = False, textarea: bool = False) -> FieldMapping:
    return FieldMapping(
        key=key,
        locator=_id(suffix),
        field_type=FieldType.TEXTAREA if textarea else FieldType.TEXT,
        required=required,
    )


def select(
    key: str,
    suffix: str,
    value_map: Mapping[str, str] | None = None,
    *,
    countries: bool = False,
    required: bool = False,
    postback: bool = False,
    conditionals: tuple[ConditionalRule, ...] = (),
) -> FieldMapping:
    return FieldMapping(
        key=key,
        locator=_id(suffix),
        field_type=FieldType.SELECT,
        value_map=dict(value_map or {}),
        use_country_table=countries,
        required=required,
        triggers_postback=postback or bool(conditionals),
        conditionals=conditionals,
    )


def radio(
    key: str,
    suffix: str,
    *,
    required: bool = False,
    yes: tuple[FieldMapping, ...] = (),
    no: tuple[FieldMapping, ...] = (),
) -> FieldMapping:
    """Yes/No radio group; ``yes``/``no`` are the fields each answer reveals."""
    rules: list[ConditionalRule] = []
    if yes:
        rules.append(ConditionalRule("Y", yes))
    if no:
        rules.append(ConditionalRule("N", no))
    return FieldMapping(
        key=key,
        locator=_id(suffix),
        field_type=FieldType.RADIO,
        value_map=YES_NO,
        required=required,
        triggers_postback=bool(rules),
        conditionals=tuple(rules),
    )


def checkbox(key: str, suffix: str, *, postback: bool = True) -> FieldMapping:
    # "Does not apply" boxes disable their sibling input through a postback.
    return FieldMapping(
        key=key,
        locator=_id(suffix),
        field_type=FieldType.CHECKBOX,
        triggers_postback=postback,
    )


def split_date(key: str, prefix: str, *, required: bool = False) -> FieldMapping:
    """Day dropdown, month dropdown and year box sharing an id prefix."""
    return FieldMapping(
        key=key,
        locator=_id(f"{prefix}Day"),
        field_type=FieldType.DATE_SPLIT,
        required=required,
        date_parts=(
            DatePart(
                _id(f"{prefix}Day"), DateComponent.DAY, DateRepresentation.ZERO_PADDED
            ),
            DatePart(
                _id(f"{prefix}Month"),
                DateComponent.MONTH,
                DateRepresentation.MONTH_ABBREV,
            ),
            DatePart(
                _id(f"{prefix}Year".replace("ddl", "tbx", 1)),
                DateComponent.YEAR,
                control=FieldType.TEXT,
            ),
        ),
    )


def security_question(section: str, name: str, control: str) -> FieldMapping:
    """Security page question whose "Yes" reveals an explanation box."""
    key = f"{section}.{name}"
    return radio(
        key,
        f"rbl{control}",
        required=True,
        yes=(text(f"{key}_explain", f"tbx{control}", textarea=True),),
    )


# --- 1-2: landing pages --------------------------------------------------


def _location_step() -> StepDefinition:
    return StepDefinition(
        number=LOCATION_STEP,
        key="location",
        label="Embassy selection",
        fields=(
            FieldMapping(
                key="location.embassy",
                locator=LOCATION_SELECT,
                field_type=FieldType.SELECT,
                triggers_postback=True,
            ),
        ),
        marker=LOCATION_SELECT,
        page_hint="Default.aspx",
        advance_locator=START_APPLICATION_LINK,
        captcha_checkpoint=True,
    )


def _application_id_step() -> StepDefinition:
    return StepDefinition(
        number=APPLICATION_ID_STEP,
        key="application_id",
        label="Application ID confirmation",
        fields=(
            FieldMapping(
                key="application.security_question",
                locator=SECURITY_QUESTION_SELECT,
                field_type=FieldType.SELECT,
            ),
            FieldMapping(
                key="application.security_answer",
                locator=SECURITY_ANSWER_INPUT,
                field_type=FieldType.TEXT,
            ),
        ),
        marker=APPLICATION_ID_LABEL,
        page_hint="ConfirmApplicationID.aspx",
        advance_locator=CONTINUE_BUTTON,
        known_errors=(
            KnownError(
                "#ctl00_SiteContentPlaceHolder_lblError",
                "Security question answer was not accepted",
            ),
        ),
    )


# --- 3-4: personal ---------------------------------------------------------


def _personal_1() -> StepDefinition:
    section = "personal_info"
    return StepDefinition(
        number=3,
        key="personal_1",
        label="Personal Information 1",
        page_hint="node=Personal1",
        fields=(
            text(f"{section}.surnames", "tbxAPP_SURNAME", required=True),
            text(f"{section}.given_names", "tbxAPP_GIVEN_NAME", required=True),
            text(f"{section}.full_name_native_alphabet", "tbxAPP_FULL_NAME_NATIVE"),
            checkbox(f"{section}.full_name_native_na", "cbexAPP_FULL_NAME_NATIVE_NA"),
            radio(
                f"{section}.other_names_used",
                "rblOtherNames",
                required=True,
                yes=(
                    text(f"{section}.other_surnames_used", "DListAlias_ctl00_tbxSURNAME"),
                    text(f"{section}.other_given_names_used", "DListAlias_ctl00_tbxGIVEN_NAME"),
                ),
            ),
            radio(
                f"{section}.telecode_name",
                "rblTelecodeQuestion",
                required=True,
                yes=(
                    text(f"{section}.telecode_surnames", "tbxAPP_TelecodeSURNAME"),
                    text(f"{section}.telecode_given_names", "tbxAPP_TelecodeGIVEN_NAME"),
                ),
            ),
            select(
                f"{section}.sex",
                "ddlAPP_GENDER",
                {"Male": "M", "Female": "F"},
                required=True,
            ),
            select(
                f"{section}.marital_status",
                "ddlAPP_MARITAL_STATUS",
                {
                    "MARRIED": "M",
                    "COMMON LAW MARRIAGE": "C",
                    "CIVIL UNION / DOMESTIC PARTNERSHIP": "P",
                    "SINGLE": "S",
                    "WIDOWED": "W",
                    "DIVORCED": "D",
                    "LEGALLY SEPARATED": "L",
                    "OTHER": "O",
                },
                required=True,
            ),
            split_date(f"{section}.date_of_birth", "ddlDOB", required=True),
            text(f"{section}.place_of_birth_city", "tbxAPP_POB_CITY", required=True),
            text(f"{section}.place_of_birth_state", "tbxAPP_POB_ST_PROVINCE"),
            checkbox(f"{section}.place_of_birth_state_na", "cbexAPP_POB_ST_PROVINCE_NA"),
            select(
                f"{section}.place_of_birth_country",
                "ddlAPP_POB_CNTRY",
                countries=True,
                required=True,
            ),
        ),
    )


def _personal_2() -> StepDefinition:
    section = "personal_info"
    return StepDefinition(
        number=PERSONAL_2_STEP,
        key="personal_2",
        label="Personal Information 2",
        page_hint="node=Personal2",
        fields=(
            select(f"{section}.nationality", "ddlAPP_NATL", countries=True, required=True),
            radio(
                f"{section}.other_nationalities",
                "rblAPP_OTH_NATL_IND",
                required=True,
                yes=(
                    select(
                        f"{section}.other_nationality_country",
                        "dtlOTHER_NATL_ctl00_ddlOTHER_NATL",
                        countries=True,
                    ),
                    radio(
                        f"{section}.other_nationality_has_passport",
                        "dtlOTHER_NATL_ctl00_rblOTHER_PPT_IND",
                        yes=(
                            text(
                                f"{section}.other_nationality_passport_number",
                                "dtlOTHER_NATL_ctl00_tbxOTHER_PPT_NUM",
                            ),
                        ),
                    ),
                ),
            ),
            radio(
                f"{section}.permanent_resident_other_country",
                "rblPermResOtherCntryInd",
                required=True,
                yes=(
                    select(
                        f"{section}.permanent_resident_country",
                        "dtlOthPermResCntry_ctl00_ddlOthPermResCntry",
                        countries=True,
                    ),
                ),
            ),
            text(f"{section}.national_identification_number", "tbxAPP_NATIONAL_ID"),
            checkbox(
                f"{section}.national_identification_number_na", "cbexAPP_NATIONAL_ID_NA"
            ),
            text(f"{section}.us_social_security_number_1", "tbxAPP_SSN1"),
            text(f"{section}.us_social_security_number_2", "tbxAPP_SSN2"),
            text(f"{section}.us_social_security_number_3", "tbxAPP_SSN3"),
            checkbox(f"{section}.us_ssn_na", "cbexAPP_SSN_NA"),
            text(f"{section}.us_taxpayer_id_number", "tbxAPP_TAX_ID"),
            checkbox(f"{section}.us_itin_na", "cbexAPP_TAX_ID_NA"),
        ),
    )


# --- 5-7: travel -----------------------------------------------------------

PURPOSE_OF_TRIP = {
    "FOREIGN GOVERNMENT OFFICIAL (A)": "A",
    "TEMP. BUSINESS OR PLEASURE VISITOR (B)": "B",
    "ALIEN IN TRANSIT (C)": "C",
    "CREWMEMBER (D)": "D",
    "TREATY TRADER OR INVESTOR (E)": "E",
    "ACADEMIC OR LANGUAGE STUDENT (F)": "F",
    "INTERNATIONAL ORGANIZATION REP./EMP. (G)": "G",
    "TEMPORARY WORKER (H)": "H",
    "FOREIGN MEDIA REPRESENTATIVE (I)": "I",
    "EXCHANGE VISITOR (J)": "J",
    "INTRACOMPANY TRANSFEREE (L)": "L",
    "VOCATIONAL/NONACADEMIC STUDENT (M)": "M",
    "OTHER (N)": "N",
    "ALIEN WITH EXTRAORDINARY ABILITY (O)": "O",
    "INTERNATIONALLY RECOGNIZED ALIEN (P)": "P",
    "CULTURAL EXCHANGE VISITOR (Q)": "Q",
    "RELIGIOUS WORKER (R)": "R",
    "INFORMANT OR WITNESS (S)": "S",
    "VICTIM OF TRAFFICKING (T)": "T",
    "VICTIM OF CRIMINAL ACTIVITY (U)": "U",
}

PURPOSE_SPECIFY = {
    "AMBASSADOR OR PUBLIC MINISTER (A1)": "A1-AM",
    "CHILD OF AN A1 (A1)": "A1-CH",
    "SPOUSE OF AN A1 (A1)": "A1-SP",
    "CHILD OF AN A2 (A2)": "A2-CH",
    "FOREIGN OFFICIAL/EMPLOYEE (A2)": "A2-EM",
    "SPOUSE OF AN A2 (A2)": "A2-SP",
    "BUSINESS OR TOURISM (TEMPORARY VISITOR) (B1/B2)": "B1-B2",
    "BUSINESS/CONFERENCE (B1)": "B1-CF",
    "TOURISM/MEDICAL TREATMENT (B2)": "B2-TM",
    "STUDENT (F1)": "F1-F1",
    "CHILD OF AN F1 (F2)": "F2-CH",
    "SPOUSE OF AN F1 (F2)": "F2-SP",
    "CHILD OF A G1 (G1)": "G1-CH",
    "PRINCIPAL REPRESENTATIVE (G1)": "G1-G1",
    "SPOUSE OF A G1 (G1)": "G1-SP",
    "STAFF OF PRINCIPAL REPRESENTATIVE (G1)": "G1-ST",
    "CHILD OF A G2 (G2)": "G2-CH",
    "REPRESENTATIVE (G2)": "G2-RP",
    "SPOUSE OF A G2 (G2)": "G2-SP",
    "CHILD OF A G3 (G3)": "G3-CH",
    "NON-RECOGNIZED/-MEMBER COUNTRY REP(G3)": "G3-RP",
    "SPOUSE OF A G3 (G3)": "G3-SP",
    "CHILD OF AN G4 (G4)": "G4-CH",
    "INTERNATIONAL ORG. EMPLOYEE (G4)": "G4-G4",
    "SPOUSE OF A G4 (G4)": "G4-SP",
    "CHILD OF A G5 (G5)": "G5-CH",
    "PERSONAL EMP. OF A G1, 2, 3, OR 4 (G5)": "G5-EM",
    "SPOUSE OF A G5 (G5)": "G5-SP",
}

# Diplomatic and international-organization sub-purposes need the sponsoring
# mission block; dependants need the principal applicant block.
_MISSION_SPECIFY = (
    "AMBASSADOR OR PUBLIC MINISTER (A1)",
    "FOREIGN OFFICIAL/EMPLOYEE (A2)",
    "PRINCIPAL REPRESENTATIVE (G1)",
    "STAFF OF PRINCIPAL REPRESENTATIVE (G1)",
    "REPRESENTATIVE (G2)",
    "NON-RECOGNIZED/-MEMBER COUNTRY REP(G3)",
    "INTERNATIONAL ORG. EMPLOYEE (G4)",
)
_DEPENDANT_SPECIFY = tuple(
    label for label in PURPOSE_SPECIFY if label.startswith(("CHILD OF", "SPOUSE OF"))
)


def _mission_fields() -> tuple[FieldMapping, ...]:
    section = "travel_info"
    return (
        text(f"{section}.sponsoring_mission_organization", "tbxMissionOrg"),
        text(f"{section}.mission_contact_surnames", "tbxMissionOrgContactSurname"),
        text(f"{section}.mission_contact_given_names", "tbxMissionOrgContactGivenName"),
        text(f"{section}.mission_address_line1", "tbxMissionOrgAddress1"),
        text(f"{section}.mission_city", "tbxMissionOrgCity"),
        select(f"{section}.mission_state", "ddlMissionOrgState"),
        text(f"{section}.mission_zip", "tbxMissionOrgZipCode"),
        text(f"{section}.mission_phone", "tbxMissionOrgTel"),
    )


def _principal_fields() -> tuple[FieldMapping, ...]:
    section = "travel_info"
    prefix = "dlPrincipalAppTravel_ctl00_"
    return (
        text(f"{section}.principal_surnames", f"{prefix}tbxPrincipleAppSurname"),
        text(f"{section}.principal_given_names", f"{prefix}tbxPrincipleAppGivenName"),
    )


def _purpose_specify() -> FieldMapping:
    key = "travel_info.purpose_specify"
    rules = tuple(
        ConditionalRule(label, _mission_fields(), source_key=key)
        for label in _MISSION_SPECIFY
    ) + tuple(
        ConditionalRule(label, _principal_fields(), source_key=key)
        for label in _DEPENDANT_SPECIFY
    )
    return FieldMapping(
        key=key,
        locator=_id("dlPrincipalAppTravel_ctl00_ddlOtherPurpose"),
        field_type=FieldType.SELECT,
        value_map=PURPOSE_SPECIFY,
        triggers_postback=True,
        conditionals=rules,
    )


def _travel() -> StepDefinition:
    section = "travel_info"
    specify = _purpose_specify()
    return StepDefinition(
        number=5,
        key="travel",
        label="Travel Information",
        page_hint="node=Travel",
        fields=(
            select(
                f"{section}.purpose_of_trip",
                "dlPrincipalAppTravel_ctl00_ddlPurposeOfTrip",
                PURPOSE_OF_TRIP,
                required=True,
                conditionals=tuple(
                    ConditionalRule(code, (specify,)) for code in ("A", "B", "F", "G")
                ),
            ),
            radio(
                f"{section}.specific_travel_plans",
                "rblSpecificTravel",
                required=True,
                yes=(
                    split_date(f"{section}.arrival_date", "ddlARRIVAL_US_DTE"),
                    text(f"{section}.arrival_flight", "tbxArriveFlight"),
                    text(f"{section}.arrival_city", "tbxArriveCity"),
                    split_date(f"{section}.departure_date", "ddlDEPARTURE_US_DTE"),
                    text(f"{section}.departure_flight", "tbxDepartFlight"),
                    text(f"{section}.departure_city", "tbxDepartCity"),
                    text(f"{section}.location", "dtlTravelLoc_ctl00_tbxSPECTRAVEL_LOCATION"),
                ),
                no=(
                    split_date(f"{section}.intended_arrival_date", "ddlTRAVEL_DTE"),
                    text(f"{section}.length_of_stay_value", "tbxTRAVEL_LOS"),
                    select(f"{section}.length_of_stay_unit", "ddlTRAVEL_LOS_CD", STAY_UNITS),
                ),
            ),
            text(f"{section}.us_stay_address_line1", "tbxStreetAddress1"),
            text(f"{section}.us_stay_address_line2", "tbxStreetAddress2"),
            text(f"{section}.us_stay_city", "tbxCity"),
            select(f"{section}.us_stay_state", "ddlTravelState"),
            text(f"{section}.us_stay_zip", "tbZIPCode"),
            select(
                f"{section}.trip_payer",
                "ddlWhoIsPaying",
                {
                    "Self": "S",
                    "Other Person": "O",
                    "Present Employer": "P",
                    "Employer in the U.S": "U",
                    "Other Company/Organization": "C",
                },
                postback=True,
            ),
        ),
    )


def _travel_companions() -> StepDefinition:
    section = "traveling_companions"
    return StepDefinition(
        number=6,
        key="travel_companions",
        label="Travel Companions",
        page_hint="node=TravelCompanions",
        fields=(
            radio(
                f"{section}.traveling_with_others",
                "rblOtherPersonsTravelingWithYou",
                required=True,
                yes=(
                    radio(
                        f"{section}.traveling_as_group",
                        "rblGroupTravel",
                        yes=(text(f"{section}.group_name", "tbxGroupName"),),
                        no=(
                            text(
                                f"{section}.companion_surnames",
                                "dlTravelCompanions_ctl00_tbxSurname",
                            ),
                            text(
                                f"{section}.companion_given_names",
                                "dlTravelCompanions_ctl00_tbxGivenName",
                            ),
                            select(
                                f"{section}.companion_relationship",
                                "dlTravelCompanions_ctl00_ddlTCRelationship",
                                {
                                    "PARENT": "P",
                                    "SPOUSE": "S",
                                    "CHILD": "C",
                                    "OTHER RELATIVE": "R",
                                    "FRIEND": "F",
                                    "BUSINESS ASSOCIATE": "B",
                                    "OTHER": "O",
                                },
                            ),
                        ),
                    ),
                ),
            ),
        ),
    )


def _previous_us_travel() -> StepDefinition:
    section = "us_history"
    visit = "dtlPREV_US_VISIT_ctl00_"
    license_prefix = "dtlUS_DRIVER_LICENSE_ctl00_"
    return StepDefinition(
        number=7,
        key="previous_us_travel",
        label="Previous U.S. Travel",
        page_hint="node=PreviousUSTravel",
        fields=(
            radio(
                f"{section}.been_in_us",
                "rblPREV_US_TRAVEL_IND",
                required=True,
                yes=(
                    split_date(f"{section}.last_visit_date", f"{visit}ddlPREV_US_VISIT_DTE"),
                    text(f"{section}.last_visit_length_value", f"{visit}tbxPREV_US_VISIT_LOS"),
                    select(
                        f"{section}.last_visit_length_unit",
                        f"{visit}ddlPREV_US_VISIT_LOS_CD",
                        STAY_UNITS,
                    ),
                    radio(
                        f"{section}.us_driver_license",
                        "rblPREV_US_DRIVER_LIC_IND",
                        yes=(
                            text(
                                f"{section}.driver_license_number",
                                f"{license_prefix}tbxUS_DRIVER_LICENSE",
                            ),
                            checkbox(
                                f"{section}.driver_license_unknown",
                                f"{license_prefix}cbxUS_DRIVER_LICENSE_NA",
                            ),
                            select(
                                f"{section}.driver_license_state",
                                f"{license_prefix}ddlUS_DRIVER_LICENSE_STATE",
                            ),
                        ),
                    ),
                ),
            ),
            radio(
                f"{section}.us_visa_issued",
                "rblPREV_VISA_IND",
                required=True,
                yes=(
                    split_date(f"{section}.last_visa_issued_date", "ddlPREV_VISA_ISSUED_DTE"),
                    text(f"{section}.visa_number", "tbxPREV_VISA_FOIL_NUMBER"),
                    checkbox(f"{section}.visa_number_unknown", "cbxPREV_VISA_FOIL_NUMBER_NA"),
                    radio(f"{section}.same_visa_type", "rblPREV_VISA_SAME_TYPE_IND"),
                    radio(f"{section}.same_country", "rblPREV_VISA_SAME_CNTRY_IND"),
                    radio(f"{section}.ten_printed", "rblPREV_VISA_TEN_PRINT_IND"),
                    radio(
                        f"{section}.visa_lost_stolen",
                        "rblPREV_VISA_LOST_IND",
                        yes=(
                            text(f"{section}.visa_lost_year", "tbxPREV_VISA_LOST_YEAR"),
                            text(
                                f"{section}.visa_lost_explanation",
                                "tbxPREV_VISA_LOST_EXPL",
                                textarea=True,
                            ),
                        ),
                    ),
                    radio(
                        f"{section}.visa_cancelled_revoked",
                        "rblPREV_VISA_CANCELLED_IND",
                        yes=(
                            text(
                                f"{section}.visa_cancelled_explanation",
                                "tbxPREV_VISA_CANCELLED_EXPL",
                                textarea=True,
                            ),
                        ),
                    ),
                ),
            ),
            radio(
                f"{section}.visa_refused",
                "rblPREV_VISA_REFUSED_IND",
                required=True,
                yes=(
                    text(
                        f"{section}.visa_refused_explanation",
                        "tbxPREV_VISA_REFUSED_EXPL",
                        textarea=True,
                    ),
                ),
            ),
            radio(
                f"{section}.immigrant_petition",
                "rblIV_PETITION_IND",
                required=True,
                yes=(
                    text(
                        f"{section}.immigrant_petition_explanation",
                        "tbxIV_PETITION_EXPL",
                        textarea=True,
                    ),
                ),
            ),
        ),
    )


# --- 8-11: contact, passport, U.S. contact, family --------------------------


def _address_phone() -> StepDefinition:
    section = "contact_info"
    return StepDefinition(
        number=8,
        key="address_phone",
        label="Address and Phone",
        page_hint="node=AddressPhone",
        fields=(
            text(f"{section}.home_address_line1", "tbxAPP_ADDR_LN1", required=True),
            text(f"{section}.home_address_line2", "tbxAPP_ADDR_LN2"),
            text(f"{section}.home_city", "tbxAPP_ADDR_CITY", required=True),
            text(f"{section}.home_state", "tbxAPP_ADDR_STATE"),
            checkbox(f"{section}.home_state_na", "cbexAPP_ADDR_STATE_NA"),
            text(f"{section}.home_postal_code", "tbxAPP_ADDR_POSTAL_CD"),
            checkbox(f"{section}.home_postal_na", "cbexAPP_ADDR_POSTAL_CD_NA"),
            select(f"{section}.home_country", "ddlCountry", countries=True, required=True),
            radio(
                f"{section}.mailing_same_as_home",
                "rblMailingAddrSame",
                no=(
                    text(f"{section}.mailing_address_line1", "tbxMAILING_ADDR_LN1"),
                    text(f"{section}.mailing_address_line2", "tbxMAILING_ADDR_LN2"),
                    text(f"{section}.mailing_city", "tbxMAILING_ADDR_CITY"),
                    text(f"{section}.mailing_state", "tbxMAILING_ADDR_STATE"),
                    checkbox(f"{section}.mailing_state_na", "cbexMAILING_ADDR_STATE_NA"),
                    text(f"{section}.mailing_postal_code", "tbxMAILING_ADDR_POSTAL_CD"),
                    checkbox(f"{section}.mailing_postal_na", "cbexMAILING_ADDR_POSTAL_CD_NA"),
                    select(f"{section}.mailing_country", "ddlMailCountry", countries=True),
                ),
            ),
            text(f"{section}.primary_phone", "tbxAPP_HOME_TEL", required=True),
            text(f"{section}.secondary_phone", "tbxAPP_MOBILE_TEL"),
            text(f"{section}.work_phone", "tbxAPP_BUS_TEL"),
            radio(
                f"{section}.other_phone_numbers",
                "rblAddPhone",
                yes=(text(f"{section}.additional_phone", "dtlAddPhone_ctl00_tbxAddPhoneInfo"),),
            ),
            text(f"{section}.email_address", "tbxAPP_EMAIL_ADDR", required=True),
            radio(
                f"{section}.other_email_addresses",
                "rblAddEmail",
                yes=(text(f"{section}.additional_email", "dtlAddEmail_ctl00_tbxAddEmailInfo"),),
            ),
        ),
    )


def _passport() -> StepDefinition:
    section = "passport_info"
    lost = "dtlLostPPT_ctl00_"
    return StepDefinition(
        number=9,
        key="passport",
        label="Passport Information",
        page_hint="node=PptVisa",
        fields=(
            select(
                f"{section}.passport_type",
                "ddlPPT_TYPE",
                {
                    "REGULAR": "R",
                    "OFFICIAL": "O",
                    "DIPLOMATIC": "D",
                    "LAISSEZ-PASSER": "L",
                    "OTHER": "T",
                },
                required=True,
                conditionals=(
                    ConditionalRule(
                        "T",
                        (
                            text(
                                f"{section}.passport_other_explanation",
                                "tbxPptOtherExpl",
                                textarea=True,
                            ),
                        ),
                    ),
                ),
            ),
            text(f"{section}.passport_number", "tbxPPT_NUM", required=True),
            text(f"{section}.passport_book_number", "tbxPPT_BOOK_NUM"),
            checkbox(f"{section}.passport_book_number_na", "cbexPPT_BOOK_NUM_NA"),
            select(
                f"{section}.passport_issuing_country",
                "ddlPPT_ISSUED_CNTRY",
                countries=True,
                required=True,
            ),
            text(f"{section}.passport_issued_city", "tbxPPT_ISSUED_IN_CITY"),
            text(f"{section}.passport_issued_state", "tbxPPT_ISSUED_IN_STATE"),
            select(
                f"{section}.passport_issued_country",
                "ddlPPT_ISSUED_IN_CNTRY",
                countries=True,
            ),
            split_date(f"{section}.passport_issue_date", "ddlPPT_ISSUED_DTE", required=True),
            split_date(f"{section}.passport_expiry_date", "ddlPPT_EXPIRE_DTE"),
            checkbox(f"{section}.passport_expiry_na", "cbxPPT_EXPIRE_NA"),
            radio(
                f"{section}.passport_lost_stolen",
                "rblLOST_PPT_IND",
                required=True,
                yes=(
                    text(f"{section}.lost_passport_number", f"{lost}tbxLOST_PPT_NUM"),
                    checkbox(
                        f"{section}.lost_passport_number_na",
                        f"{lost}cbxLOST_PPT_NUM_UNKN_IND",
                    ),
                    select(
                        f"{section}.lost_passport_country",
                        f"{lost}ddlLOST_PPT_NATL",
                        countries=True,
                    ),
                    text(
                        f"{section}.lost_passport_explanation",
                        f"{lost}tbxLOST_PPT_EXPL",
                        textarea=True,
                    ),
                ),
            ),
        ),
    )


def _us_contact() -> StepDefinition:
    section = "us_contact"
    return StepDefinition(
        number=10,
        key="us_contact",
        label="U.S. Point of Contact",
        page_hint="node=USContact",
        fields=(
            text(f"{section}.contact_surnames", "tbxUS_POC_SURNAME"),
            text(f"{section}.contact_given_names", "tbxUS_POC_GIVEN_NAME"),
            checkbox(f"{section}.contact_person_na", "cbxUS_POC_NAME_NA"),
            text(f"{section}.contact_organization", "tbxUS_POC_ORGANIZATION"),
            checkbox(f"{section}.contact_organization_na", "cbxUS_POC_ORG_NA_IND"),
            select(
                f"{section}.contact_relationship",
                "ddlUS_POC_REL_TO_APP",
                {
                    "RELATIVE": "R",
                    "SPOUSE": "S",
                    "FRIEND": "C",
                    "BUSINESS ASSOCIATE": "B",
                    "EMPLOYER": "P",
                    "SCHOOL OFFICIAL": "H",
                    "OTHER": "O",
                },
                required=True,
            ),
            text(f"{section}.contact_address_line1", "tbxUS_POC_ADDR_LN1", required=True),
            text(f"{section}.contact_city", "tbxUS_POC_ADDR_CITY", required=True),
            select(f"{section}.contact_state", "ddlUS_POC_ADDR_STATE", required=True),
            text(f"{section}.contact_zip", "tbxUS_POC_ADDR_POSTAL_CD"),
            text(f"{section}.contact_phone", "tbxUS_POC_HOME_TEL", required=True),
            text(f"{section}.contact_email", "tbxUS_POC_EMAIL_ADDR"),
            checkbox(f"{section}.contact_email_na", "cbexUS_POC_EMAIL_ADDR_NA"),
        ),
    )


US_STATUS = {
    "U.S. CITIZEN": "S",
    "U.S. LEGAL PERMANENT RESIDENT (LPR)": "C",
    "NONIMMIGRANT": "P",
    "OTHER/I DON'T KNOW": "O",
}


def _family() -> StepDefinition:
    section = "family_info"
    relatives = "dlUSRelatives_ctl00_"
    return StepDefinition(
        number=11,
        key="family",
        label="Family Information: Relatives",
        page_hint="node=Relatives",
        fields=(
            text(f"{section}.father_surnames", "tbxFATHER_SURNAME"),
            checkbox(f"{section}.father_surnames_na", "cbxFATHER_SURNAME_UNK_IND"),
            text(f"{section}.father_given_names", "tbxFATHER_GIVEN_NAME"),
            checkbox(f"{section}.father_given_names_na", "cbxFATHER_GIVEN_NAME_UNK_IND"),
            split_date(f"{section}.father_date_of_birth", "ddlFathersDOB"),
            checkbox(f"{section}.father_date_of_birth_na", "cbxFATHER_DOB_UNK_IND"),
            radio(
                f"{section}.father_in_us",
                "rblFATHER_LIVE_IN_US_IND",
                yes=(select(f"{section}.father_status", "ddlFATHER_US_STATUS", US_STATUS),),
            ),
            text(f"{section}.mother_surnames", "tbxMOTHER_SURNAME"),
            checkbox(f"{section}.mother_surnames_na", "cbxMOTHER_SURNAME_UNK_IND"),
            text(f"{section}.mother_given_names", "tbxMOTHER_GIVEN_NAME"),
            checkbox(f"{section}.mother_given_names_na", "cbxMOTHER_GIVEN_NAME_UNK_IND"),
            split_date(f"{section}.mother_date_of_birth", "ddlMothersDOB"),
            checkbox(f"{section}.mother_date_of_birth_na", "cbxMOTHER_DOB_UNK_IND"),
            radio(
                f"{section}.mother_in_us",
                "rblMOTHER_LIVE_IN_US_IND",
                yes=(select(f"{section}.mother_status", "ddlMOTHER_US_STATUS", US_STATUS),),
            ),
            radio(
                f"{section}.immediate_relatives_us",
                "rblUS_IMMED_RELATIVE_IND",
                yes=(
                    text(f"{section}.relative_surnames", f"{relatives}tbxUS_REL_SURNAME"),
                    text(f"{section}.relative_given_names", f"{relatives}tbxUS_REL_GIVEN_NAME"),
                    select(
                        f"{section}.relative_relationship",
                        f"{relatives}ddlUS_REL_TYPE",
                        {"SPOUSE": "S", "FIANCE/FIANCEE": "F", "CHILD": "C", "SIBLING": "B"},
                    ),
                    select(f"{section}.relative_status", f"{relatives}ddlUS_REL_STATUS", US_STATUS),
                ),
                no=(radio(f"{section}.other_relatives_us", "rblUS_OTHER_RELATIVE_IND"),),
            ),
        ),
    )


# --- 12-14: work and education ----------------------------------------------

OCCUPATIONS = {
    "AGRICULTURE": "A",
    "ARTIST/PERFORMER": "AP",
    "BUSINESS": "B",
    "COMMUNICATIONS": "CM",
    "COMPUTER SCIENCE": "CS",
    "CULINARY/FOOD SERVICES": "C",
    "EDUCATION": "ED",
    "ENGINEERING": "EN",
    "GOVERNMENT": "G",
    "HOMEMAKER": "H",
    "LEGAL PROFESSION": "LP",
    "MEDICAL/HEALTH": "MH",
    "MILITARY": "M",
    "NATURAL SCIENCE": "NS",
    "NOT EMPLOYED": "N",
    "PHYSICAL SCIENCES": "PS",
    "RELIGIOUS VOCATION": "RV",
    "RESEARCH": "R",
    "RETIRED": "RT",
    "SOCIAL SCIENCE": "SS",
    "STUDENT": "S",
    "OTHER": "O",
}


def _employer_fields() -> tuple[FieldMapping, ...]:
    section = "present_work_education"
    return (
        text(f"{section}.employer_school_name", "tbxEmpSchName"),
        text(f"{section}.employer_address_line1", "tbxEmpSchAddr1"),
        text(f"{section}.employer_address_line2", "tbxEmpSchAddr2"),
        text(f"{section}.employer_city", "tbxEmpSchCity"),
        text(f"{section}.employer_state", "tbxWORK_EDUC_ADDR_STATE"),
        checkbox(f"{section}.employer_state_na", "cbxWORK_EDUC_ADDR_STATE_NA"),
        text(f"{section}.employer_postal_code", "tbxWORK_EDUC_ADDR_POSTAL_CD"),
        checkbox(f"{section}.employer_postal_na", "cbxWORK_EDUC_ADDR_POSTAL_CD_NA"),
        text(f"{section}.employer_phone", "tbxWORK_EDUC_TEL"),
        select(f"{section}.employer_country", "ddlEmpSchCountry", countries=True),
        split_date(f"{section}.start_date", "ddlEmpDateFrom"),
        text(f"{section}.monthly_income", "tbxCURR_MONTHLY_SALARY"),
        checkbox(f"{section}.monthly_income_na", "cbxCURR_MONTHLY_SALARY_NA"),
        text(f"{section}.job_duties", "tbxDescribeDuties", textarea=True),
    )


def _work_education_present() -> StepDefinition:
    section = "present_work_education"
    employed = tuple(
        ConditionalRule(code, _employer_fields())
        for code in OCCUPATIONS.values()
        if code not in {"N", "RT", "H", "O"}
    )
    return StepDefinition(
        number=12,
        key="work_education_present",
        label="Present Work/Education/Training",
        page_hint="node=WorkEducation1",
        fields=(
            select(
                f"{section}.primary_occupation",
                "ddlPresentOccupation",
                OCCUPATIONS,
                required=True,
                conditionals=employed
                + (
                    ConditionalRule(
                        "N",
                        (
                            text(
                                f"{section}.not_employed_explanation",
                                "tbxNOT_EMPLOYED_EXPLANATION",
                                textarea=True,
                            ),
                        ),
                    ),
                    ConditionalRule(
                        "O",
                        (
                            text(
                                f"{section}.other_occupation_specification",
                                "tbxExplainOtherPresentOccupation",
                                textarea=True,
                            ),
                        )
                        + _employer_fields(),
                    ),
                ),
            ),
        ),
    )


def _work_education_previous() -> StepDefinition:
    section = "previous_work_education"
    employer = "dtlPrevEmpl_ctl00_"
    school = "dtlPrevEduc_ctl00_"
    return StepDefinition(
        number=13,
        key="work_education_previous",
        label="Previous Work/Education/Training",
        page_hint="node=WorkEducation2",
        fields=(
            radio(
                f"{section}.previously_employed",
                "rblPreviouslyEmployed",
                required=True,
                yes=(
                    text(f"{section}.previous_employer_name", f"{employer}tbEmployerName"),
                    text(
                        f"{section}.previous_employer_address_line1",
                        f"{employer}tbEmployerStreetAddress1",
                    ),
                    text(f"{section}.previous_employer_city", f"{employer}tbEmployerCity"),
                    text(
                        f"{section}.previous_employer_state",
                        f"{employer}tbxPREV_EMPL_ADDR_STATE",
                    ),
                    checkbox(
                        f"{section}.previous_employer_state_na",
                        f"{employer}cbxPREV_EMPL_ADDR_STATE_NA",
                    ),
                    text(
                        f"{section}.previous_employer_postal_code",
                        f"{employer}tbxPREV_EMPL_ADDR_POSTAL_CD",
                    ),
                    select(
                        f"{section}.previous_employer_country",
                        f"{employer}DropDownList2",
                        countries=True,
                    ),
                    text(f"{section}.previous_employer_phone", f"{employer}tbEmployerPhone"),
                    text(f"{section}.previous_job_title", f"{employer}tbJobTitle"),
                    split_date(
                        f"{section}.previous_employment_from", f"{employer}ddlEmpDateFrom"
                    ),
                    split_date(f"{section}.previous_employment_to", f"{employer}ddlEmpDateTo"),
                    text(
                        f"{section}.previous_job_duties",
                        f"{employer}tbDescribeDuties",
                        textarea=True,
                    ),
                ),
            ),
            radio(
                f"{section}.attended_educational_institutions",
                "rblOtherEduc",
                required=True,
                yes=(
                    text(f"{section}.educational_institution_name", f"{school}tbxSchoolName"),
                    text(f"{section}.educational_address_line1", f"{school}tbxSchoolAddr1"),
                    text(f"{section}.educational_city", f"{school}tbxSchoolCity"),
                    select(
                        f"{section}.educational_country",
                        f"{school}ddlSchoolCountry",
                        countries=True,
                    ),
                    text(f"{section}.course_of_study", f"{school}tbxSchoolCourseOfStudy"),
                    split_date(
                        f"{section}.educational_attendance_from", f"{school}ddlSchoolFrom"
                    ),
                    split_date(f"{section}.educational_attendance_to", f"{school}ddlSchoolTo"),
                ),
            ),
        ),
    )


def _work_education_additional() -> StepDefinition:
    section = "additional_occupation"
    military = "dtlMILITARY_SERVICE_ctl00_"
    return StepDefinition(
        number=14,
        key="work_education_additional",
        label="Additional Work/Education/Training",
        page_hint="node=WorkEducation3",
        fields=(
            radio(
                f"{section}.belong_clan_tribe",
                "rblCLAN_TRIBE_IND",
                required=True,
                yes=(text(f"{section}.clan_tribe_name", "tbxCLAN_TRIBE_NAME"),),
            ),
            text(f"{section}.language_name", "dtlLANGUAGES_ctl00_tbxLANGUAGE_NAME"),
            radio(
                f"{section}.traveled_last_five_years",
                "rblCOUNTRIES_VISITED_IND",
                required=True,
                yes=(
                    select(
                        f"{section}.traveled_country_region",
                        "dtlCountriesVisited_ctl00_ddlCOUNTRIES_VISITED",
                        countries=True,
                    ),
                ),
            ),
            radio(
                f"{section}.belonged_professional_org",
                "rblORGANIZATION_IND",
                required=True,
                yes=(
                    text(
                        f"{section}.professional_org_name",
                        "dtlORGANIZATIONS_ctl00_tbxORGANIZATION_NAME",
                    ),
                ),
            ),
            radio(
                f"{section}.specialized_skills_training",
                "rblSPECIALIZED_SKILLS_IND",
                required=True,
                yes=(
                    text(
                        f"{section}.specialized_skills_explain",
                        "tbxSPECIALIZED_SKILLS_EXPL",
                        textarea=True,
                    ),
                ),
            ),
            radio(
                f"{section}.served_military",
                "rblMILITARY_SERVICE_IND",
                required=True,
                yes=(
                    select(
                        f"{section}.military_country_region",
                        f"{military}ddlMILITARY_SVC_CNTRY",
                        countries=True,
                    ),
                    text(f"{section}.military_branch", f"{military}tbxMILITARY_SVC_BRANCH"),
                    text(f"{section}.military_rank_position", f"{military}tbxMILITARY_SVC_RANK"),
                    text(f"{section}.military_specialty", f"{military}tbxMILITARY_SVC_SPECIALTY"),
                    split_date(f"{section}.military_service_from", f"{military}ddlMILITARY_SVC_FROM"),
                    split_date(f"{section}.military_service_to", f"{military}ddlMILITARY_SVC_TO"),
                ),
            ),
            radio(
                f"{section}.involved_paramilitary",
                "rblINSURGENT_ORG_IND",
                required=True,
                yes=(
                    text(
                        f"{section}.involved_paramilitary_explain",
                        "tbxINSURGENT_ORG_EXPL",
                        textarea=True,
                    ),
                ),
            ),
        ),
    )


# --- 15-19: security and background -------------------------------------------

_SECURITY_PAGES: tuple[tuple[str, str, tuple[tuple[str, str], ...]], ...] = (
    (
        "security_background1",
        "SecurityandBackground1",
        (
            ("communicable_disease", "Disease"),
            ("mental_or_physical_disorder", "Disorder"),
            ("drug_abuser_or_addict", "Druguser"),
        ),
    ),
    (
        "security_background2",
        "SecurityandBackground2",
        (
            ("arrested_or_convicted", "Arrested"),
            ("controlled_substances_violation", "ControlledSubstances"),
            ("prostitution_or_vice", "Prostitution"),
            ("money_laundering", "MoneyLaundering"),
            ("human_trafficking_committed_or_conspired", "HumanTrafficking"),
            ("human_trafficking_aided_abetted", "AssistedSevereTrafficking"),
            ("human_trafficking_family_benefited", "HumanTraffickingRelated"),
        ),
    ),
    (
        "security_background3",
        "SecurityandBackground3",
        (
            ("espionage_or_illegal_activity", "IllegalActivity"),
            ("terrorist_activities", "TerroristActivity"),
            ("support_to_terrorists", "TerroristSupport"),
            ("member_of_terrorist_org", "TerroristOrg"),
            ("family_engaged_in_terrorism_last_five_years", "TerroristRel"),
            ("genocide_involvement", "Genocide"),
            ("torture_involvement", "Torture"),
            ("violence_killings_involvement", "ExViolence"),
            ("child_soldiers_involvement", "ChildSoldier"),
            ("religious_freedom_violations", "ReligiousFreedom"),
            ("population_control_involvement", "PopulationControls"),
            ("coercive_organ_transplant", "Transplant"),
        ),
    ),
    (
        "security_background4",
        "SecurityandBackground4",
        (
            ("subject_of_removal_or_deportation_hearing", "RemovalHearing"),
            ("immigration_benefit_by_fraud_or_misrepresentation", "ImmigrationFraud"),
            ("failed_to_attend_hearing_last_five_years", "FailToAttend"),
            ("unlawfully_present_or_visa_violation", "VisaViolation"),
        ),
    ),
    (
        "security_background5",
        "SecurityandBackground5",
        (
            ("withheld_child_custody", "ChildCustody"),
            ("voted_in_us_violation", "VotingViolation"),
            ("renounced_citizenship_to_avoid_tax", "RenounceExp"),
            ("former_j_visitor_two_year_rule", "FormerJVisitor"),
            ("public_school_f_status_without_reimbursing", "AttWoReimb"),
        ),
    ),
)


def _security_steps() -> tuple[StepDefinition, ...]:
    steps = []
    for offset, (section, node, questions) in enumerate(_SECURITY_PAGES):
        fields = [security_question(section, name, control) for name, control in questions]
        if section == "security_background4":
            # The deportation explanation box does not follow the tbx<Name> pattern.
            key = f"{section}.removed_or_deported_from_any_country"
            fields.append(
                radio(
                    key,
                    "rblDeport",
                    required=True,
                    yes=(text(f"{key}_explain", "tbxDeport_EXPL", textarea=True),),
                )
            )
        steps.append(
            StepDefinition(
                number=15 + offset,
                key=f"security_{offset + 1}",
                label=f"Security and Background: Part {offset + 1}",
                page_hint=f"node={node}",
                fields=tuple(fields),
            )
        )
    return tuple(steps)


@lru_cache(maxsize=1)
def ceac_steps() -> tuple[StepDefinition, ...]:
    steps = (
        _location_step(),
        _application_id_step(),
        _personal_1(),
        _personal_2(),
        _travel(),
        _travel_companions(),
        _previous_us_travel(),
        _address_phone(),
        _passport(),
        _us_contact(),
        _family(),
        _work_education_present(),
        _work_education_previous(),
        _work_education_additional(),
    ) + _security_steps()
    numbers = [step.number for step in steps]
    if numbers != list(range(1, len(steps) + 1)):
        raise RuntimeError(f"CEAC step catalog is not contiguous: {numbers}")
    return steps


def step_by_number(number: int) -> StepDefinition:
    for step in ceac_steps():
        if step.number == number:
            return step
    raise KeyError(number)
