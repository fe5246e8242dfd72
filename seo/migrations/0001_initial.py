# Generated manually

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('sites', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Page',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('shopify_id', models.CharField(help_text='Shopify resource id, as a string', max_length=64)),
                ('type', models.CharField(choices=[('PRODUCT', 'Product'), ('COLLECTION', 'Collection'), ('ARTICLE', 'Article')], max_length=20)),
                ('title', models.CharField(max_length=500)),
                ('handle', models.CharField(blank=True, max_length=500)),
                ('url', models.URLField(max_length=1000)),
                ('shopify_blog_id', models.CharField(blank=True, help_text='Owning blog id (articles only)', max_length=64, null=True)),
                ('last_updated', models.DateTimeField(blank=True, null=True)),
                ('tracking_enabled', models.BooleanField(default=False, help_text='Set on first successful publish')),
                ('version_counter', models.PositiveIntegerField(default=0, help_text='Last allocated content version number')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('site', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pages', to='sites.site')),
            ],
            options={
                'db_table': 'pages',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['site', 'type'], name='pages_site_type_idx')],
                'constraints': [models.UniqueConstraint(fields=('site', 'shopify_id', 'type'), name='uniq_page_site_shopify_id_type')],
            },
        ),
        migrations.CreateModel(
            name='ContentVersion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('version', models.PositiveIntegerField()),
                ('content', models.TextField()),
                ('keyword', models.CharField(max_length=500)),
                ('reason', models.CharField(default='initial_creation', max_length=100)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('page', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='content_versions', to='seo.page')),
            ],
            options={
                'db_table': 'content_versions',
                'ordering': ['-version'],
                'constraints': [models.UniqueConstraint(fields=('page', 'version'), name='uniq_content_version_page_version')],
            },
        ),
        migrations.CreateModel(
            name='Keyword',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('keyword', models.CharField(max_length=500)),
                ('source', models.CharField(db_index=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('site', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='keywords', to='sites.site')),
            ],
            options={
                'db_table': 'keywords',
                'ordering': ['-created_at'],
                'constraints': [models.UniqueConstraint(fields=('site', 'keyword'), name='uniq_keyword_site_keyword')],
            },
        ),
    ]
