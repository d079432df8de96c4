# Notifications package.
#
#   queue       : JobQueue contract with arq and in-memory implementations
#   listener    : domain events -> send_email jobs with deterministic ids
#   templates   : HTML/text bodies for each notification
#   providers   : Mailgun / SendGrid delivery over httpx
#   mail_service: render + deliver + EmailLog audit row
#   worker      : arq WorkerSettings and the retrying send_email job
