#!/usr/bin/env python
# Copyright 2015 Luminal, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import argparse
import collections
import functools
import logging
import os
import re
import sys

import boto3
import botocore.exceptions

DEFAULT_REGION = "us-east-1"
DEFAULT_DOCUMENT_NAME = "testAWSDistroOTel-Collector"
CLI_INVOCATION_TYPE = "CLI"
LIB_INVOCATION_TYPE = "LIB"
VERSION_RE = re.compile(r'[0-9]+')  # ascii digits only, no sign, spaces or underscores

logger = logging.getLogger('ssmclean')
invocation_type = LIB_INVOCATION_TYPE


def setup_logging(level, log_file=None):
    """setup logging when invoked as a command. logging is not setup when invoked as a lib.
    Without a log file, records go to stderr so they show up in the job output.
    """
    for h in list(logger.handlers):
        logger.removeHandler(h)
    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(level)


def logs_to_stderr():
    return any(type(h) is logging.StreamHandler and h.stream is sys.stderr
               for h in logger.handlers)


def report_error(e):
    if not logs_to_stderr():
        print(str(e), file=sys.stderr)


class CleanupError(Exception):
    prefix = "CLEANUP ERROR"

    def __init__(self, value=""):
        super(CleanupError, self).__init__(value)
        self.value = self.prefix + ": " + value if value != "" else self.prefix

    def __str__(self):
        return self.value


class DocumentServiceError(CleanupError):
    prefix = "SERVICE ERROR"


class NoVersionsError(CleanupError):
    prefix = "NO VERSIONS"


class VersionParseError(CleanupError):
    prefix = "PARSE ERROR"


DocumentVersion = collections.namedtuple('DocumentVersion', ['version', 'number'])


def to_document_version(info):
    version = info['DocumentVersion']
    if not isinstance(version, str) or VERSION_RE.fullmatch(version) is None:
        raise VersionParseError("Could not parse version number %r" % (version,))
    return DocumentVersion(version=version, number=int(version, 10))


class DocumentService(object):
    """The three SSM document operations the cleaner needs.

    botocore errors are re-raised as DocumentServiceError so callers only
    deal with one failure type per call.
    """

    def __init__(self, ssm):
        self.ssm = ssm

    def list_versions(self, document_name):
        versions = []
        response = {'NextToken': None}

        while 'NextToken' in response:
            params = dict(Name=document_name)
            if response['NextToken']:
                params['NextToken'] = response['NextToken']
            try:
                response = self.ssm.list_document_versions(**params)
            except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError) as e:
                raise DocumentServiceError("Could not list versions of %s (Details: %s)" % (document_name, str(e)))
            versions.extend(response.get('DocumentVersions', []))

        return versions

    def set_default_version(self, document_name, version):
        try:
            self.ssm.update_document_default_version(
                Name=document_name, DocumentVersion=version
            )
        except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError) as e:
            raise DocumentServiceError("Could not set default version of %s to %s (Details: %s)"
                                       % (document_name, version, str(e)))

    def delete_version(self, document_name, version):
        try:
            self.ssm.delete_document(
                Name=document_name, DocumentVersion=version
            )
        except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError) as e:
            raise DocumentServiceError("Could not delete version %s of %s (Details: %s)"
                                       % (version, document_name, str(e)))


def find_latest(versions):
    latest = DocumentVersion(version=None, number=-1)
    for version in versions:
        if version.number > latest.number:
            latest = version
    return latest


class VersionCleaner(object):

    def __init__(self, document_service, document_name):
        self.document_service = document_service
        self.document_name = document_name

    def run(self):
        """Make the highest version of the document its default and delete the rest.

        Every version is parsed before anything is changed, so a bad
        identifier leaves the document untouched. A failed deletion stops
        the run where it is; versions after it are left in place.
        """
        infos = self.document_service.list_versions(self.document_name)
        if len(infos) < 1:
            raise NoVersionsError("At least one version of %s must be found" % self.document_name)

        versions = [to_document_version(info) for info in infos]
        latest = find_latest(versions)

        # the default version can't be deleted, so move it first
        self.document_service.set_default_version(self.document_name, latest.version)
        logger.info("Updated default version to %d", latest.number)

        for version in versions:
            if version.number == latest.number:
                continue
            self.document_service.delete_version(self.document_name, version.version)
            logger.info("Document version deleted %d", version.number)

        return latest


def clean_fail(func):
    '''
    A decorator to cleanly exit on a failed cleanup.

    When invoked via the CLI, the wrapper function logs the error (with
    the stack trace for anything unexpected), also prints it to stderr
    unless the log already goes there, and exits with status 1.

    When invoked as a library, the wrapper function is a passthrough,
    so users can handle errors as they choose.
    '''
    @functools.wraps(func)
    def clean_error(*args, **kwargs):
        if invocation_type == CLI_INVOCATION_TYPE:
            try:
                return func(*args, **kwargs)
            except CleanupError as e:
                report_error(e)
                logger.error(str(e))
                sys.exit(1)
            except Exception as e:
                report_error(e)
                logger.exception(e)
                sys.exit(1)
        else:
            return func(*args, **kwargs)
    return clean_error


def get_session(aws_access_key_id=None, aws_secret_access_key=None,
                aws_session_token=None, profile_name=None):
    if aws_access_key_id is not None:
        if aws_access_key_id not in get_session._cached_sessions:
            get_session._cached_sessions[aws_access_key_id] = boto3.Session(
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                aws_session_token=aws_session_token,
                profile_name=profile_name
            )
        get_session._last_session = get_session._cached_sessions[aws_access_key_id]
        return get_session._cached_sessions[aws_access_key_id]
    else:
        if get_session._last_session is None:
            get_session._last_session = boto3.Session(profile_name=profile_name)
        return get_session._last_session
get_session._cached_sessions = {}
get_session._last_session = None


def reset_sessions():
    get_session._cached_sessions = {}
    get_session._last_session = None


def get_assumerole_credentials(arn):
    sts_client = boto3.client('sts')
    assumedRoleObject = sts_client.assume_role(RoleArn=arn,
                                               RoleSessionName="AssumeRoleSsmcleanSession1")
    credentials = assumedRoleObject['Credentials']
    return dict(aws_access_key_id=credentials['AccessKeyId'],
                aws_secret_access_key=credentials['SecretAccessKey'],
                aws_session_token=credentials['SessionToken'])


def get_session_params(profile, arn):
    params = {}
    if profile is None and arn:
        params = get_assumerole_credentials(arn)
    elif profile:
        params = dict(profile_name=profile)
    return params


def get_document_service(session, region=None, endpoint_url=None):
    ssm = session.client('ssm', region_name=region, endpoint_url=endpoint_url)
    return DocumentService(ssm)


def resolve_region(session, region=None, endpoint_url=None):
    """the region boto would pick, or DEFAULT_REGION if it can't find one"""
    try:
        session.client('ssm', region_name=region, endpoint_url=endpoint_url)
    except botocore.exceptions.NoRegionError:
        if 'AWS_DEFAULT_REGION' not in os.environ:
            return DEFAULT_REGION
    return region


@clean_fail
def cleanDocumentVersions(name, region=None, endpoint_url=None, **kwargs):
    session = get_session(**kwargs)
    document_service = get_document_service(session, region=region, endpoint_url=endpoint_url)
    return VersionCleaner(document_service, name).run()


@clean_fail
def cleanAction(args):
    session_params = get_session_params(args.profile, args.arn)
    session = get_session(**session_params)
    region = resolve_region(session, args.region, args.endpoint_url)

    return cleanDocumentVersions(args.document_name,
                                 region=region,
                                 endpoint_url=args.endpoint_url,
                                 **session_params)


def get_parser():
    """get the argument parser"""
    parser = argparse.ArgumentParser(
        description="Make the highest version of an SSM document its "
                    "default version and delete every other version")
    parser.add_argument("-d", "--document-name",
                        default=os.environ.get("SSMCLEAN_DOCUMENT_NAME", DEFAULT_DOCUMENT_NAME),
                        help="name of the SSM document to clean up. "
                        "If not specified, ssmclean will use the value of the "
                        "SSMCLEAN_DOCUMENT_NAME env variable, or if that is "
                        "not set, `" + DEFAULT_DOCUMENT_NAME + "`")
    parser.add_argument("-r", "--region",
                        help="the AWS region in which to operate. "
                        "If a region is not specified, ssmclean "
                        "will use the value of the "
                        "AWS_DEFAULT_REGION env variable, "
                        "or if that is not set, the value in "
                        "`~/.aws/config`. As a last resort, "
                        "it will use " + DEFAULT_REGION)
    parser.add_argument("--endpoint_url", default=os.environ.get("SSM_ENDPOINT_URL", None),
                        help="SSM endpoint to use. "
                        "If not specified, ssmclean "
                        "will use the value of the "
                        "SSM_ENDPOINT_URL env variable, "
                        "or if that is not set, the default endpoint "
                        "for the region.")
    parser.add_argument("--log-level",
                        help="Set the log level, default INFO",
                        default='INFO')
    parser.add_argument("--log-file",
                        help="Write the log to this file instead of stderr",
                        default=None)

    role_parse = parser.add_mutually_exclusive_group()
    role_parse.add_argument("-p", "--profile", default=None,
                            help="Boto config profile to use when "
                            "connecting to AWS")
    role_parse.add_argument("-n", "--arn", default=None,
                            help="AWS IAM ARN for AssumeRole")
    return parser


def main(argv=None):
    args = get_parser().parse_args(argv)
    global invocation_type
    invocation_type = CLI_INVOCATION_TYPE

    setup_logging(args.log_level, args.log_file)

    cleanAction(args)


if __name__ == '__main__':
    main()
