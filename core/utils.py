from rest_framework.response import Response
from rest_framework.views import exception_handler


def custom_exception_handler(exc, context):
    """Custom exception handler for consistent API responses"""
    response = exception_handler(exc, context)

    if response is not None:
        envelope = {
            'success': False,
            'message': 'An error occurred',
            'data': None,
            'errors': []
        }

        if isinstance(response.data, dict):
            if 'detail' in response.data:
                detail = response.data['detail']
                if isinstance(detail, list):
                    envelope['message'] = 'Validation failed'
                    envelope['errors'] = detail
                else:
                    envelope['message'] = str(detail)
            else:
                envelope['message'] = 'Validation failed'
                envelope['errors'] = response.data
        elif isinstance(response.data, list):
            envelope['errors'] = response.data
        else:
            envelope['message'] = str(response.data)

        response.data = envelope

    return response


def api_response(success=True, message='', data=None, errors=None, status=200):
    """Consistent API response format"""
    response_data = {
        'success': success,
        'message': message,
        'data': data if data is not None else {},
        'errors': errors if errors is not None else []
    }
    return Response(response_data, status=status)
