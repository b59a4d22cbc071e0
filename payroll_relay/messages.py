"""Message templates and builders for payroll notifications."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

_NOTIFICATION_EN = """\
:wave: Good morning, {name}!
We hope you are doing well. We are reaching out to share the details of your salary for this month.
*Salary to be paid this month:* US${salary}
*Invoice instructions:*
• The invoice must be issued before the _second-to-last business day of the month_.
• When issuing it, include the exchange rate used and the reference month. For example:
```
Services <month> - Customer support + exchange rate applied (US$ 1 = ARS$ 950)
```
*Additional details:*
• Absences: {absences_text}.
• Holidays worked: {holidays_text}.
*If there are no pending remarks*, you can issue the invoice with the values above before the second-to-last business day of the month.
Please confirm that you received this message and agree with the values by reacting with a :{reaction}: (*check mark*).
Thank you for your attention and have a great day.
_Kind regards,_
*{sign_off}*
"""

_NOTIFICATION_ES = """\
:wave: ¡Buenos días, {name}!
Esperamos que te encuentres muy bien. Nos comunicamos contigo para compartir los detalles de tu salario correspondiente a este mes.
*Salario a pagar este mes:* US${salary}
*Instrucciones para emitir la factura:*
• La factura debe ser emitida antes del _penúltimo día hábil del mes_.
• Al emitirla, incluye el tipo de cambio utilizado y el mes de referencia. Aquí tienes un ejemplo:
```
Servicios <mes> - Atención al cliente + tipo de cambio aplicado (US$ 1 = ARS$ 950)
```
*Detalles adicionales:*
• Faltas: {absences_text}.
• Días feriados trabajados: {holidays_text}.
*Si no hay observaciones pendientes*, puedes emitir la factura con los valores mencionados antes del penúltimo día hábil del mes.
Por favor, confirma que has recibido este mensaje y estás de acuerdo con los valores reaccionando con un :{reaction}: (*marca de verificación*).
Gracias por tu atención y te deseamos un excelente día.
_Atentamente,_
*{sign_off}*
"""

_NOTIFICATION_PT = """\
:wave: Bom dia, {name}!
Esperamos que você esteja bem. Entramos em contato para compartilhar os detalhes do seu salário referente a este mês.
*Salário a pagar este mês:* US${salary}
*Instruções para emitir a nota fiscal:*
• A nota deve ser emitida antes do _penúltimo dia útil do mês_.
• Ao emiti-la, inclua a taxa de câmbio utilizada e o mês de referência. Por exemplo:
```
Serviços <mês> - Atendimento ao cliente + taxa de câmbio aplicada (US$ 1 = R$ 5,00)
```
*Detalhes adicionais:*
• Faltas: {absences_text}.
• Feriados trabalhados: {holidays_text}.
*Se não houver observações pendentes*, você pode emitir a nota com os valores acima antes do penúltimo dia útil do mês.
Por favor, confirme que recebeu esta mensagem e concorda com os valores reagindo com um :{reaction}: (*marca de verificação*).
Obrigado pela atenção e tenha um ótimo dia.
_Atenciosamente,_
*{sign_off}*
"""


@dataclass(frozen=True)
class MessageTemplates:
    """Every user-facing string for one locale."""

    locale: str
    notification: str
    no_absences: str
    one_absence: str
    many_absences: str
    no_holidays: str
    one_holiday: str
    many_holidays: str
    summary: str
    confirmation: str
    echo: str
    upload_succeeded: str
    upload_missing: str
    upload_failed: str


TEMPLATES: Dict[str, MessageTemplates] = {
    "en": MessageTemplates(
        locale="en",
        notification=_NOTIFICATION_EN,
        no_absences="no absences were recorded",
        one_absence="{count} absence was recorded",
        many_absences="{count} absences were recorded",
        no_holidays="you worked no holidays",
        one_holiday="you worked {count} holiday",
        many_holidays="you worked {count} holidays",
        summary="Payroll processed! :white_check_mark:",
        confirmation="Agent {name} (<@{user_id}>) confirmed receipt of the salary notice and agrees with the values.",
        echo='Hi! I received your message: "{text}". If you need anything, I\'m here!',
        upload_succeeded="Payroll processed successfully!",
        upload_missing="No file was uploaded.",
        upload_failed="Error while processing the payroll.",
    ),
    "es": MessageTemplates(
        locale="es",
        notification=_NOTIFICATION_ES,
        no_absences="no se registraron faltas",
        one_absence="se registró {count} falta",
        many_absences="se registraron {count} faltas",
        no_holidays="no trabajaste días feriados",
        one_holiday="trabajaste {count} día feriado",
        many_holidays="trabajaste {count} días feriados",
        summary="Planilla procesada! :white_check_mark:",
        confirmation="Agente {name} (<@{user_id}>) ha confirmado la recepción del salario y está de acuerdo con los valores.",
        echo='¡Hola! He recibido tu mensaje: "{text}". Si necesitas algo, ¡estoy aquí!',
        upload_succeeded="Planilla procesada exitosamente!",
        upload_missing="No se ha subido ningún archivo.",
        upload_failed="Error al procesar la planilla.",
    ),
    "pt": MessageTemplates(
        locale="pt",
        notification=_NOTIFICATION_PT,
        no_absences="nenhuma falta foi registrada",
        one_absence="{count} falta foi registrada",
        many_absences="{count} faltas foram registradas",
        no_holidays="você não trabalhou em feriados",
        one_holiday="você trabalhou {count} feriado",
        many_holidays="você trabalhou {count} feriados",
        summary="Planilha processada! :white_check_mark:",
        confirmation="Agente {name} (<@{user_id}>) confirmou o recebimento do salário e está de acordo com os valores.",
        echo='Olá! Recebi sua mensagem: "{text}". Se precisar de algo, estou aqui!',
        upload_succeeded="Planilha processada com sucesso!",
        upload_missing="Nenhum arquivo foi enviado.",
        upload_failed="Erro ao processar a planilha.",
    ),
}

LOCALES = frozenset(TEMPLATES)


def get_templates(locale: str) -> MessageTemplates:
    try:
        return TEMPLATES[locale.strip().lower()]
    except KeyError:
        raise ValueError(f"Unsupported locale '{locale}'") from None


def coerce_count(value: object) -> float:
    """Return *value* as a number; blanks and unparseable input count as zero."""

    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value or "").strip().replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _format_count(count: float) -> str:
    if count.is_integer():
        return str(int(count))
    return f"{count:g}"


def _count_phrase(count: float, *, none: str, one: str, many: str) -> str:
    if count == 1:
        return one.format(count=_format_count(count))
    if count > 1:
        return many.format(count=_format_count(count))
    return none


def compose_notification(
    name: str,
    salary: str,
    absences: object,
    holidays_worked: object,
    *,
    templates: MessageTemplates,
    sign_off: str,
    reaction: str = "white_check_mark",
) -> str:
    """Build the direct message body sent to one payroll recipient."""

    absences_text = _count_phrase(
        coerce_count(absences),
        none=templates.no_absences,
        one=templates.one_absence,
        many=templates.many_absences,
    )
    holidays_text = _count_phrase(
        coerce_count(holidays_worked),
        none=templates.no_holidays,
        one=templates.one_holiday,
        many=templates.many_holidays,
    )
    return templates.notification.format(
        name=name,
        salary=salary,
        absences_text=absences_text,
        holidays_text=holidays_text,
        reaction=reaction,
        sign_off=sign_off,
    )


def build_confirmation(templates: MessageTemplates, *, name: str, user_id: str) -> str:
    return templates.confirmation.format(name=name, user_id=user_id)


def build_echo(templates: MessageTemplates, text: str) -> str:
    return templates.echo.format(text=text)
