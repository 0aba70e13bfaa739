"""
Canonical URLs and codes shared by the expansion, lookup and validation code.
"""

DESIGNATION_USAGE_SYSTEM = "http://terminology.hl7.org/CodeSystem/designation-usage"
TX_ISSUE_TYPE_SYSTEM = "http://hl7.org/fhir/tools/CodeSystem/tx-issue-type"
MESSAGE_ID_EXTENSION_URL = "http://hl7.org/fhir/StructureDefinition/operationoutcome-message-id"

# Extensions
EXT_STANDARDS_STATUS = "http://hl7.org/fhir/StructureDefinition/structuredefinition-standards-status"
EXT_VALUESET_SUPPLEMENT = "http://hl7.org/fhir/StructureDefinition/valueset-supplement"
EXT_EXPANSION_PARAMETER = "http://hl7.org/fhir/tools/StructureDefinition/valueset-expansion-parameter"
EXT_NOT_FOR_UI = "http://hl7.org/fhir/StructureDefinition/codesystem-concept-not-for-ui"
EXT_CONTAINS_PROPERTY = "http://hl7.org/fhir/5.0/StructureDefinition/extension-ValueSet.expansion.contains.property"
EXT_EXPANSION_PROPERTY = "http://hl7.org/fhir/5.0/StructureDefinition/extension-ValueSet.expansion.property"
EXT_LANGUAGE = "http://hl7.org/fhir/StructureDefinition/language"

EXT_VS_CONCEPT_ORDER = "http://hl7.org/fhir/StructureDefinition/valueset-conceptOrder"
EXT_VS_LABEL = "http://hl7.org/fhir/StructureDefinition/valueset-label"
EXT_CS_CONCEPT_ORDER = "http://hl7.org/fhir/StructureDefinition/codesystem-conceptOrder"
EXT_CS_LABEL = "http://hl7.org/fhir/StructureDefinition/codesystem-label"
EXT_CS_ALTERNATE = "http://hl7.org/fhir/StructureDefinition/codesystem-alternate"
EXT_ITEM_WEIGHT = "http://hl7.org/fhir/StructureDefinition/itemWeight"
EXT_RENDERING_STYLE = "http://hl7.org/fhir/StructureDefinition/rendering-style"
EXT_RENDERING_XHTML = "http://hl7.org/fhir/StructureDefinition/rendering-xhtml"
EXT_VS_DEPRECATED = "http://hl7.org/fhir/StructureDefinition/valueset-deprecated"
EXT_VS_CONCEPT_DEFINITION = "http://hl7.org/fhir/StructureDefinition/valueset-concept-definition"

# Extension url -> property code, for concept references and supplements
EXTENSION_PROPERTY_CODES = {
    EXT_VS_CONCEPT_ORDER: "order",
    EXT_CS_CONCEPT_ORDER: "order",
    EXT_VS_LABEL: "label",
    EXT_CS_LABEL: "label",
    EXT_ITEM_WEIGHT: "weight",
}

# Extensions copied through to expansion entries untouched
PASSTHROUGH_EXTENSIONS = {
    EXT_VS_DEPRECATED,
    EXT_RENDERING_STYLE,
    EXT_RENDERING_XHTML,
    EXT_VS_CONCEPT_DEFINITION,
}

CONCEPT_PROPERTIES = "http://hl7.org/fhir/concept-properties"
NOT_SELECTABLE_URI = f"{CONCEPT_PROPERTIES}#notSelectable"

WELL_KNOWN_PROPERTY_URIS = {
    "definition": f"{CONCEPT_PROPERTIES}#definition",
    "status": f"{CONCEPT_PROPERTIES}#status",
    "inactive": f"{CONCEPT_PROPERTIES}#inactive",
    "notSelectable": NOT_SELECTABLE_URI,
    "label": f"{CONCEPT_PROPERTIES}#label",
    "order": f"{CONCEPT_PROPERTIES}#order",
    "weight": f"{CONCEPT_PROPERTIES}#itemWeight",
    "parent": f"{CONCEPT_PROPERTIES}#parent",
    "child": f"{CONCEPT_PROPERTIES}#child",
}

ACTIVE_STATUS_CODES = {"active", "a"}
INACTIVE_STATUS_CODES = {"retired", "deprecated", "withdrawn", "inactive"}

# OperationOutcome message ids
MSG_UNABLE_TO_RESOLVE_VALUE_SET = "Unable_to_resolve_value_Set_"
MSG_NONE_OF_CODES_IN_VALUE_SET = "None_of_the_provided_codes_are_in_the_value_set_one"
MSG_UNKNOWN_CODE_IN_VERSION = "Unknown_Code_in_Version"
MSG_UNKNOWN_CODESYSTEM_VERSION = "UNKNOWN_CODESYSTEM_VERSION"
MSG_UNKNOWN_CODESYSTEM = "UNKNOWN_CODESYSTEM"
MSG_INVALID_DISPLAY = "Invalid_Display"
MSG_MISSING_REQUIRED_PARAMETER = "Missing_Required_Parameter"
