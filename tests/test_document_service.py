import unittest
import boto3
from botocore.stub import Stubber

from ssmclean import DocumentService, DocumentServiceError

DOCUMENT_NAME = "testAWSDistroOTel-Collector"


class TestDocumentService(unittest.TestCase):
    def setUp(self):
        self.ssm_client = boto3.client('ssm', region_name='us-east-1')

    def test_list_versions_success(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_response('list_document_versions', {
                'DocumentVersions': [
                    {'Name': DOCUMENT_NAME, 'DocumentVersion': '1'},
                    {'Name': DOCUMENT_NAME, 'DocumentVersion': '2'},
                ]
            }, expected_params={'Name': DOCUMENT_NAME})
            document_service = DocumentService(self.ssm_client)
            versions = document_service.list_versions(DOCUMENT_NAME)
        self.assertEqual([v['DocumentVersion'] for v in versions], ['1', '2'])

    def test_list_versions_follows_next_token(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_response('list_document_versions', {
                'DocumentVersions': [
                    {'Name': DOCUMENT_NAME, 'DocumentVersion': '1'},
                ],
                'NextToken': 'page2'
            }, expected_params={'Name': DOCUMENT_NAME})
            stubber.add_response('list_document_versions', {
                'DocumentVersions': [
                    {'Name': DOCUMENT_NAME, 'DocumentVersion': '2'},
                ]
            }, expected_params={'Name': DOCUMENT_NAME, 'NextToken': 'page2'})
            document_service = DocumentService(self.ssm_client)
            versions = document_service.list_versions(DOCUMENT_NAME)
            stubber.assert_no_pending_responses()
        self.assertEqual([v['DocumentVersion'] for v in versions], ['1', '2'])

    def test_list_versions_empty(self):
        with Stubber(self.ssm_client) as stubber:
            # SSM leaves DocumentVersions out when nothing matches
            stubber.add_response('list_document_versions', {},
                                 expected_params={'Name': DOCUMENT_NAME})
            document_service = DocumentService(self.ssm_client)
            versions = document_service.list_versions(DOCUMENT_NAME)
            stubber.assert_no_pending_responses()
        self.assertEqual(versions, [])

    def test_list_versions_error(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_client_error(
                'list_document_versions',
                'InvalidDocument',
                'The specified document does not exist.',
                400,
                expected_params={'Name': DOCUMENT_NAME})
            document_service = DocumentService(self.ssm_client)
            with self.assertRaises(DocumentServiceError) as e:
                document_service.list_versions(DOCUMENT_NAME)
        self.assertIn("SERVICE ERROR: Could not list versions of %s" % DOCUMENT_NAME, str(e.exception))
        self.assertIn("The specified document does not exist.", str(e.exception))

    def test_set_default_version_success(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_response('update_document_default_version', {},
                                 expected_params={'Name': DOCUMENT_NAME, 'DocumentVersion': '3'})
            document_service = DocumentService(self.ssm_client)
            document_service.set_default_version(DOCUMENT_NAME, '3')
            stubber.assert_no_pending_responses()

    def test_set_default_version_error(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_client_error(
                'update_document_default_version',
                'InvalidDocumentVersion',
                'The document version is not valid or does not exist.',
                400,
                expected_params={'Name': DOCUMENT_NAME, 'DocumentVersion': '3'})
            document_service = DocumentService(self.ssm_client)
            with self.assertRaises(DocumentServiceError) as e:
                document_service.set_default_version(DOCUMENT_NAME, '3')
        self.assertIn("Could not set default version of %s to 3" % DOCUMENT_NAME, str(e.exception))

    def test_delete_version_success(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_response('delete_document', {},
                                 expected_params={'Name': DOCUMENT_NAME, 'DocumentVersion': '1'})
            document_service = DocumentService(self.ssm_client)
            document_service.delete_version(DOCUMENT_NAME, '1')
            stubber.assert_no_pending_responses()

    def test_delete_version_error(self):
        with Stubber(self.ssm_client) as stubber:
            stubber.add_client_error(
                'delete_document',
                'AssociatedInstances',
                'You must disassociate a document from all managed nodes before you can delete it.',
                400,
                expected_params={'Name': DOCUMENT_NAME, 'DocumentVersion': '1'})
            document_service = DocumentService(self.ssm_client)
            with self.assertRaises(DocumentServiceError) as e:
                document_service.delete_version(DOCUMENT_NAME, '1')
        self.assertIn("Could not delete version 1 of %s" % DOCUMENT_NAME, str(e.exception))
