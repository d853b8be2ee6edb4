"""
Localized (Tamil | English) notification text for export outcomes.
"""

from typing import Optional

GENERATING_TITLE = "PDF உருவாக்கப்படுகிறது | Generating PDF"
GENERATING_MESSAGE = "PDF தயாரிக்கப்படுகிறது... தயவுசெய்து காத்திருக்கவும்\n\nGenerating PDF... Please wait"

SENDING_TITLE = "மின்னஞ்சல் அனுப்பப்படுகிறது | Sending Email"
SENDING_MESSAGE = "PDF மின்னஞ்சலுக்கு அனுப்பப்படுகிறது...\n\nSending PDF to email..."

SUCCESS_TITLE = "வெற்றி! | Success!"
DOWNLOAD_SUCCESS_MESSAGE = "கோப்பு பதிவிறக்கம் தொடங்கியது!\n\nDownload started successfully!"

ERROR_TITLE = "பிழை | Error"
EMAIL_FAILED_TITLE = "மின்னஞ்சல் தோல்வி | Email Failed"

EMAIL_REQUIRED_MESSAGE = "மின்னஞ்சல் முகவரி தேவை | An email address is required to send the PDF"

_NO_CONTENT = {
    "notes": "இந்த அத்தியாயத்தில் குறிப்புகள் இல்லை | No notes available for this chapter",
    "qa": "இந்த அத்தியாயத்தில் வினா-விடைகள் இல்லை | No Q&A available for this chapter",
}
_NO_CONTENT_DEFAULT = "இந்த அத்தியாயத்தில் உள்ளடக்கம் இல்லை | No content available for this chapter"


def no_content_message(resource_type: str) -> str:
    return _NO_CONTENT.get(resource_type, _NO_CONTENT_DEFAULT)


def email_sent_message(email: str) -> str:
    return (
        f"PDF உங்கள் மின்னஞ்சலுக்கு அனுப்பப்பட்டது!\n📧 {email}\n\n"
        "இன்பாக்ஸ் மற்றும் ஸ்பேம் போல்டரை சரிபார்க்கவும்.\n\n"
        "PDF sent to your email successfully!"
    )


def failure_title(privileged: bool) -> str:
    return ERROR_TITLE if privileged else EMAIL_FAILED_TITLE


def failure_message(privileged: bool, error: str, support_phone: str, user_message: Optional[str] = None) -> str:
    """
    Error text for a failed job.

    Privileged users see the raw error; everyone else gets the localized
    explanation and the support number to call.
    """
    if privileged:
        return f"Export தோல்வியடைந்தது: {error}\n\nதொடர்புக்கு: {support_phone}"
    return (
        f"PDF மின்னஞ்சலுக்கு அனுப்ப முடியவில்லை.\n({user_message or error})\n\n"
        f"தயவு செய்து நிர்வாகியை தொடர்பு கொள்ளவும்:\n📞 {support_phone}"
    )
