# services/default_templates.py
"""Built-in report template content, created on first use of each type."""

_SIGN_OFF = (
    "Please do not hesitate to contact the undersigned should you have any queries "
    "regarding this report.\n\n"
    "For and on behalf of Lancaster and Dickenson Consulting.\n\n"
    "{SIGNATURE_IMAGE}\n"
    "{LAA_NAME}\n"
    "Licensed Asbestos Assessor - {LAA_LICENSE}"
)

_ASBESTOS_LEGISLATION = (
    "This clearance inspection was undertaken in accordance with the following legislation "
    "and guidance:\n"
    "{LEGISLATION}"
)

_INSPECTION_EXCLUSIONS = (
    "This clearance certificate applies only to the asbestos removal area described in this "
    "report. Areas outside the removal area, and materials concealed within wall cavities, "
    "ceiling spaces or beneath floor coverings, were not inspected."
)

_CERTIFICATION = (
    "An inspection of the asbestos removal area and the surrounding areas (including access "
    "and egress pathways) was undertaken on {INSPECTION_DATE}. The LAA found no visible "
    "asbestos residue from asbestos removal work in the asbestos removal area, or in the "
    "vicinity of the area, where the asbestos removal works were carried out.\n\n"
    "{AIR_MONITORING_RESULTS}\n\n"
    "The LAA considers that the asbestos removal area does not pose a risk to health and "
    "safety from exposure to asbestos and may be re-occupied."
)


def _asbestos_sections(kind, limitations_key, air_monitoring):
    background_kind = kind.upper()
    details = (
        "Following discussions with {CLIENT_NAME}, Lancaster and Dickenson Consulting (L & D) "
        "were contracted to undertake a visual clearance inspection"
        + (" {AIR_MONITORING_REFERENCE}" if air_monitoring else "")
        + " following the removal of {ASBESTOS_TYPE} asbestos from {SITE_NAME} (herein referred "
        "to as 'the Site').\n\n"
        "Asbestos removal works were undertaken by {ASBESTOS_REMOVALIST}. {LAA_NAME} (ACT "
        "Licensed Asbestos Assessor - {LAA_LICENSE}) from L&D visited the Site at "
        "{INSPECTION_TIME} on {INSPECTION_DATE}.\n\n"
        "Table 1 below outlines the ACM that formed part of the inspection. {APPENDIX_REFERENCES}"
    )
    return {
        'background_information_title': f'BACKGROUND INFORMATION REGARDING {background_kind} CLEARANCE INSPECTIONS',
        'background_information_content': (
            f"Following completion of {kind.lower()} asbestos removal works, a clearance inspection "
            "must be undertaken by an independent Licensed Asbestos Assessor before the removal "
            "area is re-occupied.\n\n"
            "The clearance inspection confirms:\n"
            "[BULLET]The asbestos removal area and surrounding areas are free of visible asbestos "
            "dust and debris\n"
            "[BULLET]All waste has been removed from the Site\n"
            "[BULLET]Any remaining asbestos is appropriately labelled and recorded"
        ),
        'legislative_requirements_title': 'LEGISLATIVE REQUIREMENTS',
        'legislative_requirements_content': _ASBESTOS_LEGISLATION,
        f'{limitations_key}_title': f'{background_kind} CLEARANCE CERTIFICATE LIMITATIONS',
        f'{limitations_key}_content': (
            "This certificate relates to the condition of the removal area at the time of "
            "inspection only. **It does not certify that all asbestos has been removed from the "
            "Site.**"
        ),
        'inspection_details_title': 'INSPECTION DETAILS',
        'inspection_details_content': details,
        'inspection_exclusions_title': 'INSPECTION EXCLUSIONS',
        'inspection_exclusions_content': _INSPECTION_EXCLUSIONS,
        'clearance_certification_title': 'CLEARANCE CERTIFICATION',
        'clearance_certification_content': _CERTIFICATION if air_monitoring else _CERTIFICATION.replace(
            "{AIR_MONITORING_RESULTS}\n\n", ""),
        'sign_off_content': _SIGN_OFF,
        'footer_text': '{REPORT_TYPE} Clearance Certificate: {SITE_NAME}',
    }


def _lead_sections():
    return {
        'background_information_title': 'BACKGROUND INFORMATION REGARDING LEAD CLEARANCE INSPECTIONS',
        'background_information_content': (
            "Following lead abatement works, a clearance inspection is undertaken to confirm the "
            "work area has been adequately cleaned before it is re-occupied.\n\n"
            "The clearance inspection comprises:\n"
            "[BULLET]A visual inspection for lead paint dust, flakes and debris\n"
            "[BULLET]Validation sampling where nominated for an item"
        ),
        'legislative_requirements_title': 'LEGISLATIVE REQUIREMENTS',
        'legislative_requirements_content': (
            "This clearance inspection was undertaken in accordance with the following legislation "
            "and guidance:\n"
            "{LEGISLATION}"
        ),
        'inspection_details_title': 'INSPECTION DETAILS',
        'inspection_details_content': (
            "Following discussions with {CLIENT_NAME}, Lancaster and Dickenson Consulting (L & D) "
            "were contracted to undertake a lead clearance inspection {AIR_MONITORING_REFERENCE} "
            "following lead abatement works at {SITE_NAME} (herein referred to as 'the Site').\n\n"
            "Lead abatement works were undertaken by {LEAD_ABATEMENT_CONTRACTOR}. {LAA_NAME} from "
            "L&D visited the Site at {INSPECTION_TIME} on {INSPECTION_DATE}.\n\n"
            "{APPENDIX_REFERENCES}"
        ),
        'clearance_certification_title': 'CLEARANCE CERTIFICATION',
        'clearance_certification_content': (
            "An inspection of the lead abatement area was undertaken on {INSPECTION_DATE}. No "
            "visible lead dust or paint debris was identified within the work area.\n\n"
            "{AIR_MONITORING_RESULTS}"
        ),
        'sign_off_content': (
            "Please do not hesitate to contact the undersigned should you have any queries "
            "regarding this report.\n\n"
            "For and on behalf of Lancaster and Dickenson Consulting.\n\n"
            "{SIGNATURE_IMAGE}\n"
            "{LAA_NAME}"
        ),
        'footer_text': 'Lead Clearance Certificate: {SITE_NAME}',
    }


DEFAULT_TEMPLATES = {
    'asbestosClearanceFriable': {
        'report_headers': {
            'title': 'FRIABLE ASBESTOS REMOVAL CLEARANCE CERTIFICATE',
            'subtitle': 'Clearance Inspection Report',
        },
        'standard_sections': _asbestos_sections(
            'Friable', 'friable_clearance_certificate_limitations', air_monitoring=True),
    },
    'asbestosClearanceNonFriable': {
        'report_headers': {
            'title': 'NON-FRIABLE ASBESTOS REMOVAL CLEARANCE CERTIFICATE',
            'subtitle': 'Clearance Inspection Report',
        },
        'standard_sections': _asbestos_sections(
            'Non-friable', 'non_friable_clearance_certificate_limitations', air_monitoring=False),
    },
    'leadClearance': {
        'report_headers': {
            'title': 'LEAD CLEARANCE CERTIFICATE',
            'subtitle': 'Clearance Inspection Report',
        },
        'standard_sections': _lead_sections(),
    },
}
