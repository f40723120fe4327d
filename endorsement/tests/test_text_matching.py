from endorsement.app.services.text_matching import (
    CLAIMANT_NAME,
    ENDORSER_NAME,
    SIGNATURE_SECTION,
    SKILL_CODE,
    SKILL_NAME,
    fuzzy_present,
    section_contains,
    significant_words,
    verbatim_present,
)


CERTIFICATE_TEXT = "\n".join(
    [
        "Skill Endorsement Certificate",
        "Skill: Database Design",
        "Skill Code: ICT403",
        "Claimant: Ada Lovelace",
        "Endorsement by: Grace Hopper",
        "Endorsement Statement:",
        '"Ada consistently delivered robust schema',
        'migrations under pressure"',
        "Digital Signature:",
        "Grace Hopper",
        "This is a digitally verified skill endorsement certificate.",
        "Generated with SkillsAware OBv3 Endorsement System",
    ]
)


def test_label_anchor_requires_value_after_its_label():
    assert SKILL_CODE.matches(CERTIFICATE_TEXT, "ICT403")
    assert CLAIMANT_NAME.matches(CERTIFICATE_TEXT, "Ada Lovelace")
    assert ENDORSER_NAME.matches(CERTIFICATE_TEXT, "Grace Hopper")

    # present in the text, but not after the claimant label
    assert not CLAIMANT_NAME.matches(CERTIFICATE_TEXT, "Grace Hopper")


def test_label_anchor_rejects_prefix_of_longer_value():
    assert not CLAIMANT_NAME.matches(CERTIFICATE_TEXT, "Ada Love")


def test_label_anchor_tolerates_wrapped_values():
    assert CLAIMANT_NAME.matches("Claimant:\nAda\nLovelace\n", "Ada Lovelace")


def test_skill_name_anchor_ignores_the_title_and_code_label():
    assert SKILL_NAME.matches(CERTIFICATE_TEXT, "Database Design")
    assert not SKILL_NAME.matches(CERTIFICATE_TEXT, "Endorsement Certificate Foo")


def test_skill_name_anchor_skips_longer_skill_labels():
    narrative = "Skill Narrative: Migrated the billing platform"

    assert not SKILL_NAME.matches(CERTIFICATE_TEXT, "Code: ICT403")
    assert not SKILL_NAME.matches(narrative, "Narrative: Migrated the billing platform")
    assert SKILL_NAME.matches("Skill: Code Review", "Code Review")


def test_locate_returns_printed_value():
    assert SKILL_NAME.locate(CERTIFICATE_TEXT) == "Database Design"
    assert SKILL_CODE.locate(CERTIFICATE_TEXT) == "ICT403"
    assert CLAIMANT_NAME.locate(CERTIFICATE_TEXT) == "Ada Lovelace"
    assert ENDORSER_NAME.locate(CERTIFICATE_TEXT) == "Grace Hopper"
    assert CLAIMANT_NAME.locate("nothing here") is None


def test_significant_words_takes_first_five_long_words():
    assert significant_words("a bb ccc dddd eeeee ffffff ggggggg hhhhhhhh iiiiiiiii") == [
        "dddd",
        "eeeee",
        "ffffff",
        "ggggggg",
        "hhhhhhhh",
    ]


def test_fuzzy_presence_tolerates_line_wrapping():
    assert fuzzy_present(
        CERTIFICATE_TEXT,
        "Ada consistently delivered robust schema migrations under pressure",
    )


def test_fuzzy_presence_requires_three_words():
    assert not fuzzy_present(CERTIFICATE_TEXT, "consistently delivered nothing whatsoever else")
    assert fuzzy_present(CERTIFICATE_TEXT, "consistently delivered robust nothing else")


def test_fuzzy_presence_with_few_significant_words():
    assert fuzzy_present(CERTIFICATE_TEXT, "robust")
    assert not fuzzy_present(CERTIFICATE_TEXT, "fragile")
    assert fuzzy_present(CERTIFICATE_TEXT, "a an of")


def test_signature_section_is_bounded_by_footer():
    section = SIGNATURE_SECTION.extract(CERTIFICATE_TEXT)

    assert section == "Grace Hopper"
    assert section_contains(section, "Grace Hopper")
    assert not section_contains(section, "Generated")


def test_signature_section_runs_to_end_without_footer():
    assert SIGNATURE_SECTION.extract("Digital Signature: G. H.\n") == "G. H."
    assert SIGNATURE_SECTION.extract("no heading here") is None


def test_verbatim_presence_survives_line_break_inside_url():
    text = "Supporting Evidence\nhttps://github.com/ada/\nschema-tools\n"

    assert verbatim_present(text, "https://github.com/ada/schema-tools")
    assert not verbatim_present(text, "https://github.com/ada/other")
