"""
API Response Formatter Service
Standardizes API responses across the citation endpoints
"""
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class APIResponseFormatter:
    """Service for standardizing API responses"""

    @staticmethod
    def format_success_response(data: Any = None, message: str = "Success",
                               metadata: Optional[Dict] = None) -> Dict[str, Any]:
        """Format successful API response"""
        response = {
            'success': True,
            'message': message,
            'timestamp': _now()
        }

        if data is not None:
            response['data'] = data

        if metadata:
            response['metadata'] = metadata

        return response

    @staticmethod
    def format_error_response(error: str, error_code: str = "GENERIC_ERROR",
                            status_code: int = 400,
                            details: Optional[Dict] = None) -> Dict[str, Any]:
        """Format error response"""
        response = {
            'success': False,
            'error': error,
            'error_code': error_code,
            'status_code': status_code,
            'timestamp': _now()
        }

        if details:
            response['details'] = details

        return response

    @staticmethod
    def format_validation_error_response(errors: List[str],
                                       field_errors: Optional[Dict] = None) -> Dict[str, Any]:
        """Format validation error response"""
        response = {
            'success': False,
            'error': 'Validation failed',
            'error_code': 'VALIDATION_ERROR',
            'errors': errors,
            'timestamp': _now()
        }

        if field_errors:
            response['field_errors'] = field_errors

        return response

    @staticmethod
    def format_registry_response(payload: Dict[str, Any], view_id: str) -> Dict[str, Any]:
        """Format a grouped citation registry payload"""
        return {
            'success': True,
            'view_id': view_id,
            'registry': payload,
            'count': payload.get('total', 0),
            'timestamp': _now()
        }

    @staticmethod
    def format_proof_response(session_state: str, viewer_state: Dict[str, Any],
                            html: Optional[str] = None) -> Dict[str, Any]:
        """Format proof session + viewer state"""
        response = {
            'success': True,
            'session': session_state,
            'viewer': viewer_state,
            'timestamp': _now()
        }

        if html is not None:
            response['html'] = html

        return response
