"""
Email delivery for GrowthKit.

Handles transactional emails for:
- Waitlist invitations (batch and manual)
- Waitlist join confirmations
- Email address verification
"""
import re
from typing import Dict, Any, Optional
from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To


class EmailService:
    """Service for sending transactional emails."""

    DEFAULT_TEMPLATES = {
        'invitation': {
            'name': 'Waitlist Invitation',
            'subject': "You're in! Your invite to {{app_name}}",
            'body': '''
Hi {{name}},

Your spot on the {{app_name}} waitlist came up.

Your invitation code is: **{{invitation_code}}**

{{#if expires_at}}
The code is valid until {{expires_at}}.
{{/if}}

See you inside,
The {{app_name}} Team
            ''',
        },
        'waitlist_confirmation': {
            'name': 'Waitlist Confirmation',
            'subject': "You're on the {{app_name}} waitlist",
            'body': '''
Hi {{name}},

Thanks for joining the {{app_name}} waitlist. You are number **{{position}}** in line.

We'll email you an invitation code as soon as your spot opens up.

The {{app_name}} Team
            ''',
        },
        'email_verification': {
            'name': 'Email Verification',
            'subject': 'Confirm your email for {{app_name}}',
            'body': '''
Hi {{name}},

Please confirm this address to finish setting up your {{app_name}} account:

{{verify_link}}

The link expires in {{expires_in_hours}} hours. If you did not ask for this, you can ignore this email.

The {{app_name}} Team
            ''',
        },
    }

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key

    @property
    def sendgrid_api_key(self) -> Optional[str]:
        return self._api_key or current_app.config.get('SENDGRID_API_KEY')

    def render_template(self, template: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, str]:
        """
        Render a template with the provided data.
        Uses simple {{variable}} replacement (Handlebars-like).
        """
        subject = template['subject']
        body = template['body']

        def replace_conditionals(text: str) -> str:
            pattern = r'\{\{#if (\w+)\}\}(.*?)\{\{/if\}\}'

            def replacer(match):
                return match.group(2) if data.get(match.group(1)) else ''

            return re.sub(pattern, replacer, text, flags=re.DOTALL)

        subject = replace_conditionals(subject)
        body = replace_conditionals(body)

        for key, value in data.items():
            placeholder = '{{' + key + '}}'
            subject = subject.replace(placeholder, str(value or ''))
            body = body.replace(placeholder, str(value or ''))

        return {
            'subject': subject.strip(),
            'body': body.strip(),
        }

    def send(self, to: str, template: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Render a named template and send it.

        Never raises; failures come back as {'success': False, 'error': ...}.
        """
        template_def = self.DEFAULT_TEMPLATES.get(template)
        if not template_def:
            return {'success': False, 'error': f'Template not found: {template}'}

        rendered = self.render_template(template_def, data or {})
        return self.send_email(
            to_email=to,
            to_name=(data or {}).get('name') or '',
            subject=rendered['subject'],
            body=rendered['body'],
        )

    def send_email(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email using SendGrid.
        """
        if not self.sendgrid_api_key:
            current_app.logger.warning('SendGrid API key not configured, email not sent')
            return {'success': False, 'error': 'SendGrid not configured'}

        try:
            sg = SendGridAPIClient(self.sendgrid_api_key)

            sender = Email(
                email=from_email or current_app.config.get('EMAIL_FROM_ADDRESS'),
                name=from_name or current_app.config.get('EMAIL_FROM_NAME')
            )

            recipient = To(email=to_email, name=to_name or None)

            message = Mail(
                from_email=sender,
                to_emails=recipient,
                subject=subject,
                html_content=self._markdown_to_html(body)
            )

            response = sg.send(message)

            return {
                'success': True,
                'status_code': response.status_code,
            }

        except Exception as e:
            current_app.logger.error(f'Failed to send email to {to_email}: {str(e)}')
            return {'success': False, 'error': str(e)}

    def _markdown_to_html(self, text: str) -> str:
        """Bold markers and paragraphs only."""
        html = re.sub(r'\*\*(.+?)\*\*', r'<strong>\1</strong>', text)
        paragraphs = [p.strip().replace('\n', '<br>') for p in html.split('\n\n') if p.strip()]
        return ''.join(f'<p>{p}</p>' for p in paragraphs)


# Singleton instance
email_service = EmailService()
