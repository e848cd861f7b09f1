"""
User-facing message catalogs. Spanish is the default language of the space.
"""

MESSAGES = {
    'es': {
        'welcome': '¡Bienvenido, {name}!',
        'goodbye': '¡Hasta luego, {name}! Estuviste {minutes} minutos.',
        'status_in': '{name}: estás adentro desde hace {minutes} minutos.',
        'status_out': '{name}: no tenés una sesión abierta.',
        'not_found': 'No encontrado.',
        'code_not_found': 'Código no encontrado.',
        'email_not_found': 'No se encontró ningún estudiante con ese email.',
        'plan_not_found': 'Plan no encontrado.',
        'payment_not_found': 'Pago no encontrado.',
        'invalid_input': 'Datos inválidos.',
        'invalid_code': 'El código debe tener 5 dígitos.',
        'conflict': 'La operación entra en conflicto con el estado actual.',
        'email_taken': 'Ya existe un estudiante con ese email.',
        'plan_overlap': 'Ya tenés un plan activo en ese período.',
        'codes_exhausted': 'No hay códigos disponibles. Consultá en recepción.',
        'session_already_open': 'Ya hay una sesión abierta para este código.',
        'invalid_transition': 'El pago ya fue procesado.',
        'access_denied': 'Acceso denegado.',
        'no_active_plan': 'No tenés una membresía activa.',
        'outside_schedule': 'No estás dentro del horario permitido de tu plan ({start} a {end}).',
        'gateway_unavailable': 'No pudimos iniciar el pago. Intentá nuevamente.',
        'unknown_reference': 'Referencia de pago desconocida.',
        'invalid_signature': 'Firma inválida.',
        'staff_only': 'Acceso solo para el personal.',
        'invalid_password': 'Contraseña incorrecta.',
        'internal_error': 'Ocurrió un error. Intentá nuevamente.',
        'plan_activated_title': '¡Plan activado!',
        'plan_activated_body': 'Tu plan {plan} fue activado. Monto: {amount}.',
        'payment_failed_title': 'Pago no procesado',
        'payment_failed_body': 'Tu pago para el plan {plan} no pudo ser procesado. Motivo: {reason}.',
        'registration_successful': 'Registro exitoso. Tu código es {code}.',
        'login_successful': 'Sesión iniciada.',
        'logged_out': 'Sesión cerrada.',
        'plan_created': 'Plan creado.',
        'payment_registered': 'Pago registrado. Aboná en recepción.',
        'preference_created': 'Te redirigimos a Mercado Pago para completar el pago.',
        'payment_confirmed': 'Pago confirmado.',
        'webhook_processed': 'Notificación procesada.',
    },
    'en': {
        'welcome': 'Welcome, {name}!',
        'goodbye': 'See you, {name}! You stayed {minutes} minutes.',
        'status_in': '{name}: checked in for {minutes} minutes.',
        'status_out': '{name}: no open session.',
        'not_found': 'Not found.',
        'code_not_found': 'Code not found.',
        'email_not_found': 'No student registered with that email.',
        'plan_not_found': 'Plan not found.',
        'payment_not_found': 'Payment not found.',
        'invalid_input': 'Invalid input.',
        'invalid_code': 'The code must have 5 digits.',
        'conflict': 'The operation conflicts with the current state.',
        'email_taken': 'A student with that email already exists.',
        'plan_overlap': 'You already have an active plan in that period.',
        'codes_exhausted': 'No access codes available. Please ask at the front desk.',
        'session_already_open': 'There is already an open session for this code.',
        'invalid_transition': 'The payment was already processed.',
        'access_denied': 'Access denied.',
        'no_active_plan': 'You do not have an active membership.',
        'outside_schedule': 'You are outside your plan hours ({start} to {end}).',
        'gateway_unavailable': 'We could not start the payment. Please try again.',
        'unknown_reference': 'Unknown payment reference.',
        'invalid_signature': 'Invalid signature.',
        'staff_only': 'Staff only.',
        'invalid_password': 'Invalid password.',
        'internal_error': 'Something went wrong. Please try again.',
        'plan_activated_title': 'Plan activated!',
        'plan_activated_body': 'Your plan {plan} is now active. Amount: {amount}.',
        'payment_failed_title': 'Payment not processed',
        'payment_failed_body': 'Your payment for plan {plan} could not be processed. Reason: {reason}.',
        'registration_successful': 'Registration successful. Your code is {code}.',
        'login_successful': 'Login successful.',
        'logged_out': 'Logged out.',
        'plan_created': 'Plan created.',
        'payment_registered': 'Payment registered, pay at the front desk.',
        'preference_created': 'Redirecting you to Mercado Pago to complete the payment.',
        'payment_confirmed': 'Payment confirmed.',
        'webhook_processed': 'Webhook processed.',
    },
}

DEFAULT_LANGUAGE = 'es'


def render(key, language=None, **params):
    catalog = MESSAGES.get(language or DEFAULT_LANGUAGE, MESSAGES[DEFAULT_LANGUAGE])
    template = catalog.get(key) or MESSAGES[DEFAULT_LANGUAGE].get(key) or key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
