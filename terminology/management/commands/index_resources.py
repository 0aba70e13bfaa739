from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from config.es_config import get_es_client
from terminology_api.es_indexer.indexer import ResourceIndexer


class Command(BaseCommand):
    help = "Index FHIR CodeSystem and ValueSet JSON (files, directories or Bundles) into Elasticsearch"

    def add_arguments(self, parser):
        parser.add_argument("path", help="JSON file or directory of JSON files")
        parser.add_argument(
            "--recreate",
            action="store_true",
            help="Delete and recreate the indices before loading",
        )

    def handle(self, *args, **kwargs):
        path = kwargs["path"]
        self.stdout.write(f"Indexing terminology resources from {path}...")

        indexer = ResourceIndexer(get_es_client(), settings.TERMINOLOGY_INDEX_PREFIX)
        try:
            success_count, errors = indexer.index_path(path, recreate=kwargs["recreate"])
        except Exception as e:
            raise CommandError(f"Indexing failed: {e}") from e

        if errors:
            self.stdout.write(self.style.WARNING(f"{len(errors)} resources failed to index"))
        self.stdout.write(self.style.SUCCESS(f"Indexed {success_count} resources"))
