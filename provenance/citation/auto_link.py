"""
Filename heuristics for uploaded evidence.

Used when uploads are registered as citations: decide whether a PDF is really a
blueprint, and which audited pillar a file most likely supports.
"""

from typing import Optional

BLUEPRINT_KEYWORDS = (
    'blueprint', 'plan', 'drawing', 'layout', 'floorplan', 'floor_plan',
    'architectural', 'cad',
)

PILLAR_BLUEPRINT_KEYWORDS = (
    'blueprint', 'floorplan', 'floor_plan', 'floor-plan', 'architectural',
    'drawing', 'cad', 'layout', 'plan.pdf', 'plans.pdf',
)

OBC_KEYWORDS = (
    'permit', 'license', 'obc', 'building_code', 'building-code', 'inspection',
    'compliance', 'regulation', 'certificate', 'approval',
)

MATERIALS_KEYWORDS = (
    'material', 'bom', 'bill_of_materials', 'supply', 'inventory', 'quote',
    'estimate',
)

PHOTO_MATERIALS_KEYWORDS = ('material', 'supply', 'inventory')


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def is_likely_blueprint(file_name: str) -> bool:
    """Check if a file is likely a blueprint based on its name."""
    return _contains_any((file_name or '').lower(), BLUEPRINT_KEYWORDS)


def suggest_pillar(file_name: str, document_type: str) -> Optional[str]:
    """
    Determine the pillar an uploaded file most likely supports.

    Site photos default to the area pillar (photos are what area detection
    runs on) unless the name points at materials. Generic documents get no
    suggestion.
    """
    lower_name = (file_name or '').lower()

    if document_type in ('site_photo', 'image'):
        if _contains_any(lower_name, PHOTO_MATERIALS_KEYWORDS):
            return 'materials'
        return 'area'

    if _contains_any(lower_name, PILLAR_BLUEPRINT_KEYWORDS):
        return 'blueprint'

    if _contains_any(lower_name, OBC_KEYWORDS):
        return 'obc'

    if _contains_any(lower_name, MATERIALS_KEYWORDS):
        return 'materials'

    return None
