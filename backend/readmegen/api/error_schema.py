ERROR_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "example": "UNAUTHORIZED"},
                "message": {"type": "string", "example": "Not authorized, no session"},
                "details": {"type": "object", "example": {}},
            },
            "required": ["code", "message", "details"],
            "example": {
                "code": "UNAUTHORIZED",
                "message": "Not authorized, no session",
                "details": {},
            },
        }
    },
    "required": ["error"],
    "example": {
        "error": {
            "code": "UNAUTHORIZED",
            "message": "Not authorized, no session",
            "details": {},
        }
    },
}
