from django.apps import AppConfig


class PipelineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'pipeline'
    verbose_name = 'Lead forwarding pipeline'

    def ready(self):
        from pipeline.services.scheduler import ForwardScheduler
        from pipeline.tasks import forward_lead

        # Started by the process entrypoint, not here
        self.scheduler = ForwardScheduler(app=forward_lead.app, task=forward_lead)
